"""Base channel adapter interface.

Every channel-specific adapter inherits from one of the strategy bases here
and implements ``build_request`` plus ``extract_quote``:

- :class:`BaseAPIAdapter` for structured JSON endpoints
- :class:`BasePageAdapter` for full HTML documents
- :class:`BaseRenderedAdapter` for pages that need a real browser

The shared pipeline in :meth:`BaseChannelAdapter.fetch_quote` runs the
robots check, then for each attempt the rate limiter, pacing, identity
rotation, the fetch itself and extraction, all under the retry controller.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ratecompare.config import ChannelAdapterConfig, settings
from ratecompare.core.exceptions import (
    FetchTimeout,
    InvalidListingURL,
    NetworkTransientError,
    RateFetchingError,
    RobotsDisallowed,
    UpstreamRejectedError,
)
from ratecompare.core.models import (
    Channel,
    ChannelRequest,
    FetchStrategy,
    Identity,
    PartyComposition,
    PriceBreakdown,
    utcnow,
)
from ratecompare.scrapers.utils.browser_manager import BrowserManager, get_browser_manager
from ratecompare.scrapers.utils.ethics import EthicalPolicyGuard
from ratecompare.scrapers.utils.extraction import extract_from_text, html_regions
from ratecompare.scrapers.utils.http import http_session
from ratecompare.scrapers.utils.rate_limiter import ChannelRateLimiter
from ratecompare.scrapers.utils.retry import with_retry

logger = structlog.get_logger(__name__)

# HTTP statuses worth another attempt.
RETRYABLE_STATUSES = frozenset({408, 425, 429})


class BaseChannelAdapter(ABC):
    """Abstract base class for all channel adapters.

    Adapters are long-lived: one instance per channel owns that channel's
    rate limiter ledger and policy guard for the life of the process.
    """

    channel: Channel
    strategy: FetchStrategy
    DEFAULT_BASE_URL: str = ""
    # Must define a ``listing_id`` group.
    LISTING_URL_PATTERN: "re.Pattern[str]"

    def __init__(
        self,
        config: Optional[ChannelAdapterConfig] = None,
        rate_limiter: Optional[ChannelRateLimiter] = None,
        guard: Optional[EthicalPolicyGuard] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or ChannelAdapterConfig()
        self.http_client = http_client
        self._sleep = sleep
        self.rate_limiter = rate_limiter or ChannelRateLimiter(
            self.config.rate_limit, channel=self.channel.value, sleep=sleep
        )
        self.guard = guard or EthicalPolicyGuard(
            self.config.ethics,
            user_agents=settings.USER_AGENT_POOL,
            header_sets=settings.HEADER_SET_POOL,
            http_client=http_client,
            sleep=sleep,
        )
        self.logger = logger.bind(channel=self.channel.value, strategy=self.strategy.value)

    @property
    def base_url(self) -> str:
        return (self.config.base_url or self.DEFAULT_BASE_URL).rstrip("/")

    def parse_listing_id(self, url: str) -> str:
        """Extract the channel-side listing id from a listing URL.

        Raises:
            InvalidListingURL: If the URL does not have this channel's shape
        """
        match = self.LISTING_URL_PATTERN.search(url or "")
        if not match:
            raise InvalidListingURL(self.channel.value, url)
        return match.group("listing_id")

    @abstractmethod
    def build_request(
        self,
        listing_id: str,
        check_in: date,
        check_out: date,
        party: PartyComposition,
    ) -> ChannelRequest:
        """Build the outbound request for one stay."""

    @abstractmethod
    async def _execute(self, request: ChannelRequest, identity: Identity) -> Any:
        """Perform the fetch and return the raw payload for ``extract_quote``."""

    @abstractmethod
    def extract_quote(self, raw: Any) -> PriceBreakdown:
        """Turn a raw payload into a price breakdown.

        Raises:
            NoPricingDataFound: If no pricing could be recovered
        """

    async def fetch_quote(
        self,
        property_id: str,
        listing_url: str,
        check_in: date,
        check_out: date,
        party: Optional[PartyComposition] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Fetch one candidate quote for ``listing_url``.

        Args:
            property_id: Internal property id the quote is attributed to
            listing_url: The property's listing URL on this channel
            check_in: Arrival date
            check_out: Departure date
            party: Guests; defaults to two adults
            timeout: Per-attempt timeout in seconds; defaults to the
                     channel's configured timeout

        Returns:
            Candidate quote mapping for :class:`QuoteValidator`

        Raises:
            RateFetchingError: Wrapping whatever made the fetch fail
        """
        party = party or PartyComposition()
        log = self.logger.bind(property_id=property_id)

        try:
            listing_id = self.parse_listing_id(listing_url)
            request = self.build_request(listing_id, check_in, check_out, party)

            self.guard.rotate_identity()
            if not await self.guard.check_policy(request.url):
                raise RobotsDisallowed(request.url)

            breakdown = await with_retry(
                lambda: self._attempt(request, timeout),
                self.config.retry,
                sleep=self._sleep,
                log=log,
            )
        except Exception as e:
            raise RateFetchingError(
                self.channel.value, property_id, check_in, check_out, e
            ) from e

        log.info(
            "quote_extracted",
            listing_id=listing_id,
            total=str(breakdown.total),
            available=breakdown.available,
            estimated=breakdown.estimated,
        )
        return self._candidate(property_id, listing_id, check_in, check_out, breakdown)

    async def _attempt(self, request: ChannelRequest, timeout: Optional[float]) -> PriceBreakdown:
        await self.rate_limiter.admit(request.url)
        await self.guard.pace()
        identity = self.guard.rotate_identity()

        limit = timeout or self.config.timeout
        try:
            raw = await asyncio.wait_for(self._execute(request, identity), limit)
        except asyncio.TimeoutError as e:
            raise FetchTimeout(request.url, limit) from e

        return self.extract_quote(raw)

    def _candidate(
        self,
        property_id: str,
        listing_id: str,
        check_in: date,
        check_out: date,
        breakdown: PriceBreakdown,
    ) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "property_id": property_id,
            "check_in": check_in,
            "check_out": check_out,
            "base_price": breakdown.base,
            "fees": {
                "cleaning": breakdown.cleaning,
                "service": breakdown.service,
                "taxes": breakdown.taxes,
                "other": breakdown.other,
            },
            "total_price": breakdown.total,
            "currency": breakdown.currency or self.config.currency,
            "availability": breakdown.available,
            "estimated": breakdown.estimated,
            "listing_id": listing_id,
            "source": self.strategy.value,
            "last_updated": utcnow(),
        }

    async def close(self) -> None:
        """Release adapter resources. Nothing to do by default."""


class BaseHTTPAdapter(BaseChannelAdapter):
    """Adapter that fetches with a plain HTTP GET."""

    async def _http_get(self, request: ChannelRequest, identity: Identity) -> httpx.Response:
        headers = {**identity.as_headers(), **request.headers}
        try:
            async with http_session(self.http_client, timeout=self.config.timeout) as client:
                response = await client.get(request.url, params=request.params, headers=headers)
        except httpx.TimeoutException as e:
            raise FetchTimeout(request.url, self.config.timeout) from e
        except httpx.TransportError as e:
            raise NetworkTransientError(
                f"Network error fetching {request.url}: {e}",
                context={"url": request.url},
            ) from e

        self._raise_for_status(request.url, response)
        return response

    def _raise_for_status(self, url: str, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        self.logger.warning("http_error_status", url=url, status_code=status)
        if status >= 500 or status in RETRYABLE_STATUSES:
            raise NetworkTransientError(
                f"HTTP {status} from {url}",
                context={"url": url, "status_code": status},
            )
        raise UpstreamRejectedError(url, status)


class BaseAPIAdapter(BaseHTTPAdapter):
    """Adapter for structured JSON pricing endpoints."""

    strategy = FetchStrategy.API

    async def _execute(self, request: ChannelRequest, identity: Identity) -> Any:
        response = await self._http_get(request, identity)
        try:
            return response.json()
        except ValueError as e:
            raise NetworkTransientError(
                f"Malformed JSON from {request.url}",
                context={"url": request.url},
            ) from e


class BasePageAdapter(BaseHTTPAdapter):
    """Adapter that pattern-matches prices in a fetched HTML document."""

    strategy = FetchStrategy.PAGE

    async def _execute(self, request: ChannelRequest, identity: Identity) -> str:
        response = await self._http_get(request, identity)
        return response.text

    def extract_quote(self, raw: str) -> PriceBreakdown:
        regions, body_text = html_regions(raw)
        return extract_from_text(regions, body_text, default_currency=self.config.currency)


class BaseRenderedAdapter(BaseChannelAdapter):
    """Adapter that drives a headless browser to the live listing page.

    The raw payload is ``{"regions": [...], "text": str}``: the rendered
    text of candidate regions and of the whole body.
    """

    strategy = FetchStrategy.RENDERED

    # Selector signalling that pricing has rendered.
    WAIT_SELECTOR: str = "body"
    WAIT_FOR_PRICING_MS: int = 10000

    _REGIONS_JS = """
        els => els
            .map(e => e.innerText || '')
            .filter(t => t.length < 5000 && /[$€£¥]/.test(t))
    """

    def __init__(self, *args, browser_manager: Optional[BrowserManager] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.browser_manager = browser_manager or get_browser_manager()

    async def _execute(self, request: ChannelRequest, identity: Identity) -> Dict[str, Any]:
        url = str(httpx.URL(request.url, params=request.params))
        timeout_ms = int(self.config.timeout * 1000)

        async with self.browser_manager.page(identity) as page:
            try:
                await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                try:
                    await page.wait_for_selector(
                        self.WAIT_SELECTOR, timeout=self.WAIT_FOR_PRICING_MS
                    )
                except PlaywrightTimeoutError:
                    # Extraction decides whether what did render is usable.
                    self.logger.debug("pricing_selector_not_found", selector=self.WAIT_SELECTOR)
                regions: List[str] = await page.eval_on_selector_all(
                    "div, section, aside", self._REGIONS_JS
                )
                body_text = await page.inner_text("body")
            except PlaywrightTimeoutError as e:
                raise FetchTimeout(url, self.config.timeout) from e
            except PlaywrightError as e:
                raise NetworkTransientError(
                    f"Browser error loading {url}: {e}",
                    context={"url": url},
                ) from e

        return {"regions": regions, "text": body_text}

    def extract_quote(self, raw: Dict[str, Any]) -> PriceBreakdown:
        return extract_from_text(
            raw.get("regions") or [],
            raw.get("text") or "",
            default_currency=self.config.currency,
        )
