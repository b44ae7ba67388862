"""Pytest configuration and shared fixtures."""

from datetime import date
from decimal import Decimal
from typing import Callable, List

import httpx
import pytest

from ratecompare.config import (
    ChannelAdapterConfig,
    EthicalPolicy,
    RateLimitPolicy,
    RetryPolicy,
)
from ratecompare.core.models import Fees, RateQuote


CHECK_IN = date(2026, 7, 1)
CHECK_OUT = date(2026, 7, 4)


class FakeClock:
    """Monotonic clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class SleepRecorder:
    """Async sleep that returns immediately and records each delay."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fast_config() -> ChannelAdapterConfig:
    """Channel config with no pacing, no robots check and zero backoff."""
    return ChannelAdapterConfig(
        timeout=5.0,
        retry=RetryPolicy(max_retries=2, base_delay=0.0),
        rate_limit=RateLimitPolicy(requests_per_minute=600, burst_limit=100, max_per_hour=1000),
        ethics=EthicalPolicy(
            respect_robots=False,
            rotate_identity=False,
            human_delay_enabled=False,
        ),
    )


@pytest.fixture
def mock_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by ``handler``."""

    def build(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


def price_page(*lines: str) -> str:
    """Minimal listing page with one pricing block."""
    spans = "".join(f"<span>{line}</span>" for line in lines)
    return (
        "<html><head><script>var price = '$1.00';</script></head><body>"
        "<div class='header'>Beach House</div>"
        f"<div class='book-it'>{spans}</div>"
        "</body></html>"
    )


@pytest.fixture
def make_quote() -> Callable[..., RateQuote]:
    """Factory for validated-looking quotes with a consistent breakdown."""

    def build(channel: str, total: str, available: bool = True, **overrides) -> RateQuote:
        total_price = Decimal(total)
        taxes = (total_price * Decimal("0.10")).quantize(Decimal("0.01"))
        values = dict(
            channel=channel,
            property_id="beach-house",
            check_in=CHECK_IN,
            check_out=CHECK_OUT,
            base_price=total_price - taxes,
            fees=Fees(taxes=taxes),
            total_price=total_price,
            currency="USD",
            availability=available,
        )
        values.update(overrides)
        return RateQuote(**values)

    return build
