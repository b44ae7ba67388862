"""Shared httpx client helper."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 30.0,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` when one is injected, otherwise a per-call client.

    A per-call client avoids lifecycle issues across event loops; an
    injected one (tests, connection reuse) is left open for its owner.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as session:
        yield session
