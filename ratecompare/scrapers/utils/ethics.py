"""Per-channel request courtesy: robots rules, identity rotation, pacing.

Pacing and rotation spread load the way a person browsing would. They are
an operational courtesy toward the channel, not a way to avoid detection.
"""

import asyncio
import random
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

import httpx
import structlog

from ratecompare.config import EthicalPolicy
from ratecompare.core.models import Identity
from ratecompare.scrapers.utils.http import http_session

logger = structlog.get_logger(__name__)

ROBOTS_CACHE_TTL = 3600.0
ROBOTS_TIMEOUT = 10.0


class EthicalPolicyGuard:
    """Applies one channel's :class:`EthicalPolicy` before each request.

    Robots rules are fetched once per host and reused for an hour. When the
    robots file cannot be fetched the guard fails open.
    """

    def __init__(
        self,
        policy: EthicalPolicy,
        user_agents: List[str],
        header_sets: List[Dict[str, str]],
        http_client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not user_agents or not header_sets:
            raise ValueError("identity pools must not be empty")
        self.policy = policy
        self.user_agents = list(user_agents)
        self.header_sets = [dict(h) for h in header_sets]
        self.http_client = http_client
        self._rng = rng or random.Random()
        self._clock = clock
        self._sleep = sleep
        self._robots: Dict[str, Tuple[float, RobotFileParser]] = {}
        self.current_identity = self._pick(rotate=False)

    def _pick(self, rotate: bool) -> Identity:
        if rotate:
            return Identity(
                user_agent=self._rng.choice(self.user_agents),
                headers=dict(self._rng.choice(self.header_sets)),
            )
        return Identity(user_agent=self.user_agents[0], headers=dict(self.header_sets[0]))

    def rotate_identity(self) -> Identity:
        """Pick the identity for the next request."""
        self.current_identity = self._pick(self.policy.rotate_identity)
        return self.current_identity

    async def pace(self) -> float:
        """Sleep for a randomized human-like delay. Returns the delay used."""
        if not self.policy.human_delay_enabled:
            return 0.0
        window = self.policy.human_delay
        delay = self._rng.uniform(window.min_seconds, window.max_seconds)
        logger.debug("human_delay", delay_seconds=round(delay, 2))
        await self._sleep(delay)
        return delay

    async def check_policy(self, url: str) -> bool:
        """Return False when robots rules disallow ``url``.

        Rules are checked for the current user agent and for ``*``.
        """
        if not self.policy.respect_robots:
            return True

        parts = urlsplit(url)
        origin = f"{parts.scheme}://{parts.netloc}"
        parser = await self._robots_for(origin)
        if parser is None:
            return True

        user_agent = self.current_identity.user_agent
        allowed = parser.can_fetch(user_agent, url) and parser.can_fetch("*", url)
        if not allowed:
            logger.warning("robots_disallowed", url=url, user_agent=user_agent)
        return allowed

    async def _robots_for(self, origin: str) -> Optional[RobotFileParser]:
        now = self._clock()
        cached = self._robots.get(origin)
        if cached and now - cached[0] < ROBOTS_CACHE_TTL:
            return cached[1]

        robots_url = f"{origin}/robots.txt"
        try:
            async with http_session(self.http_client, timeout=ROBOTS_TIMEOUT) as client:
                response = await client.get(
                    robots_url, headers=self.current_identity.as_headers()
                )
        except httpx.HTTPError as e:
            logger.warning("robots_fetch_failed", url=robots_url, error=str(e))
            return None

        parser = RobotFileParser(robots_url)
        # Anything but a 200 is read as "no rules".
        lines = response.text.splitlines() if response.status_code == 200 else []
        parser.parse(lines)
        self._robots[origin] = (now, parser)
        logger.debug("robots_loaded", url=robots_url, status_code=response.status_code)
        return parser
