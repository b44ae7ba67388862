"""Rate comparison orchestration.

:class:`RateComparisonService` validates a request, serves it from cache
when possible, otherwise fans out to one long-lived adapter per channel
with bounded concurrency, validates what comes back, caches the quotes and
hands them to the comparison engine.
"""

import asyncio
import inspect
import time
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from ratecompare.config import PropertyConfig, RateCompareConfig, settings
from ratecompare.core.exceptions import (
    AllChannelsFailedError,
    ChannelNotConfigured,
    InvalidRequestError,
    PropertyNotFound,
    RateCompareError,
    RateFetchingError,
)
from ratecompare.core.models import Channel, PartyComposition, RateComparisonResult, RateQuote
from ratecompare.scrapers.base import BaseChannelAdapter
from ratecompare.scrapers.factory import AdapterFactory, get_adapter_factory
from ratecompare.scrapers.utils.normalizer import QuoteValidator
from ratecompare.services.cache_service import RateCache, cache_key_for_rates, get_rate_cache
from ratecompare.services.comparison import ComparisonEngine

logger = structlog.get_logger(__name__)

EVENT_READY = "ready"
EVENT_RATES_LOADED = "rates-loaded"
EVENT_ERROR = "error"
EVENT_CHANNEL_FETCHED = "channel-fetched"
EVENTS = (EVENT_READY, EVENT_RATES_LOADED, EVENT_ERROR, EVENT_CHANNEL_FETCHED)

Handler = Callable[[Dict[str, Any]], Any]


class RateComparisonService:
    """Fetches, validates, caches and compares quotes for one property.

    Args:
        config: Channel policies and property listings
        factory: Adapter factory; defaults to the global one
        cache: Rate cache; defaults to the configured backend
        max_concurrency: Outbound channel fetches in flight at once,
                         across all concurrent comparisons
        channel_priority: Tie-break order for equal totals
        adapter_dependencies: Extra keyword arguments for every adapter
                              (``http_client``, ``sleep``, ``browser_manager``)
    """

    def __init__(
        self,
        config: RateCompareConfig,
        factory: Optional[AdapterFactory] = None,
        cache: Optional[RateCache] = None,
        validator: Optional[QuoteValidator] = None,
        engine: Optional[ComparisonEngine] = None,
        max_concurrency: Optional[int] = None,
        channel_priority: Optional[Sequence[Channel]] = None,
        adapter_dependencies: Optional[Dict[str, Any]] = None,
    ):
        self.config = config
        self.factory = factory or get_adapter_factory()
        self.cache = cache if cache is not None else get_rate_cache()
        self.validator = validator or QuoteValidator()
        self.engine = engine or ComparisonEngine(
            channel_priority or settings.get_channel_priority()
        )
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENT_FETCHES
        # Shared by every comparison so the cap holds across concurrent requests.
        self._fetch_semaphore = asyncio.Semaphore(self.max_concurrency)
        self._adapter_dependencies = adapter_dependencies or {}
        self._adapters: Dict[Channel, BaseChannelAdapter] = {}
        self._handlers: Dict[str, List[Handler]] = {event: [] for event in EVENTS}

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Handler) -> None:
        """Register ``handler`` for ``event`` (sync or async callable)."""
        if event not in self._handlers:
            raise ValueError(f"Unknown event: {event}")
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        """Remove a previously registered handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                outcome = handler(payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(
                    "event_handler_failed",
                    event_name=event,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Announce readiness to listeners."""
        await self._emit(
            EVENT_READY,
            {"properties": [p.id for p in self.config.properties]},
        )
        logger.info("rate_service_ready", properties=len(self.config.properties))

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()
        self._adapters.clear()
        await self.cache.close()

    def get_adapter(self, channel: Channel) -> BaseChannelAdapter:
        """Return the channel's long-lived adapter, creating it on first use."""
        adapter = self._adapters.get(channel)
        if adapter is None:
            adapter = self.factory.create_adapter(
                channel,
                config=self.config.channel_config(channel),
                **self._adapter_dependencies,
            )
            self._adapters[channel] = adapter
        return adapter

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    async def fetch_rates(
        self,
        property_id: str,
        check_in: date,
        check_out: date,
        channels: Optional[Iterable[Union[Channel, str]]] = None,
        party: Optional[PartyComposition] = None,
        timeout: Optional[float] = None,
    ) -> RateComparisonResult:
        """Widget-facing wrapper around :meth:`get_comparison`.

        Emits ``rates-loaded`` on success and ``error`` on failure; the
        error is re-raised after listeners have been notified.
        """
        try:
            result = await self.get_comparison(
                property_id, channels, check_in, check_out, party=party, timeout=timeout
            )
        except RateCompareError as e:
            await self._emit(EVENT_ERROR, {"property_id": property_id, "error": e.to_dict()})
            raise

        await self._emit(EVENT_RATES_LOADED, {"property_id": property_id, "result": result})
        return result

    async def get_comparison(
        self,
        property_id: str,
        channels: Optional[Iterable[Union[Channel, str]]],
        check_in: date,
        check_out: date,
        party: Optional[PartyComposition] = None,
        timeout: Optional[float] = None,
    ) -> RateComparisonResult:
        """Compare a property's rates across channels for one stay.

        Args:
            property_id: Configured property id
            channels: Channels to query; None means every channel the
                      property has a listing on
            check_in: Arrival date
            check_out: Departure date (after check_in)
            party: Guests; defaults to two adults
            timeout: Per-attempt fetch timeout in seconds

        Raises:
            InvalidRequestError: Unknown property, bad dates or channels
            AllChannelsFailedError: If no channel produced a valid quote
        """
        prop, wanted = self._validate_request(property_id, channels, check_in, check_out)
        party = party or PartyComposition()
        log = logger.bind(property_id=property_id, check_in=str(check_in), check_out=str(check_out))

        key = cache_key_for_rates(property_id, wanted, check_in, check_out, party)
        cached = await self.cache.get_entry(key)
        if cached is not None:
            log.info(
                "rates_served_from_cache",
                quotes=len(cached.quotes),
                failed=len(cached.failures),
            )
            result = self.engine.compare(cached.quotes, property_id, check_in, check_out)
            result.failures = cached.failures
            result.from_cache = True
            return result

        async def bounded(channel: Channel):
            async with self._fetch_semaphore:
                return await self._fetch_channel(
                    prop, channel, check_in, check_out, party, timeout
                )

        outcomes = await asyncio.gather(*(bounded(c) for c in wanted))

        quotes: List[RateQuote] = []
        failures: List[RateFetchingError] = []
        for outcome in outcomes:
            if isinstance(outcome, RateFetchingError):
                failures.append(outcome)
            else:
                quotes.append(outcome)

        if not quotes:
            log.error(
                "all_channels_failed",
                failures={f.channel: f.cause_code for f in failures},
            )
            raise AllChannelsFailedError(property_id, failures)

        failure_messages = {f.channel: str(f.cause) for f in failures}
        await self.cache.set(key, quotes, failure_messages)

        result = self.engine.compare(quotes, property_id, check_in, check_out)
        result.failures = failure_messages
        log.info(
            "rates_compared",
            quotes=len(quotes),
            failed=len(failures),
            best_channel=result.best_quote.channel if result.best_quote else None,
        )
        return result

    def _validate_request(
        self,
        property_id: str,
        channels: Optional[Iterable[Union[Channel, str]]],
        check_in: date,
        check_out: date,
    ) -> Tuple[PropertyConfig, List[Channel]]:
        if not property_id:
            raise InvalidRequestError("property_id is required")
        prop = self.config.get_property(property_id)
        if prop is None:
            raise PropertyNotFound(property_id)

        if check_out <= check_in:
            raise InvalidRequestError(
                "check_out must be after check_in",
                context={"check_in": check_in.isoformat(), "check_out": check_out.isoformat()},
            )

        if channels is None:
            wanted = [c for c in Channel if prop.listing_url(c)]
            if not wanted:
                raise InvalidRequestError(
                    f"Property '{property_id}' has no channel listings configured",
                    context={"property_id": property_id},
                )
            return prop, wanted

        wanted: List[Channel] = []
        for raw in channels:
            name = raw.value if isinstance(raw, Channel) else str(raw).strip().lower()
            if name not in Channel.values():
                raise InvalidRequestError(
                    f"Unknown channel: {raw}",
                    context={"channel": str(raw), "allowed": Channel.values()},
                )
            if Channel(name) not in wanted:
                wanted.append(Channel(name))
        if not wanted:
            raise InvalidRequestError("At least one channel is required")
        return prop, wanted

    async def _fetch_channel(
        self,
        prop: PropertyConfig,
        channel: Channel,
        check_in: date,
        check_out: date,
        party: PartyComposition,
        timeout: Optional[float],
    ) -> Union[RateQuote, RateFetchingError]:
        """Fetch and validate one channel; failures are returned, not raised."""
        started = time.monotonic()
        log = logger.bind(property_id=prop.id, channel=channel.value)

        try:
            listing_url = prop.listing_url(channel)
            if not listing_url:
                raise RateFetchingError(
                    channel.value,
                    prop.id,
                    check_in,
                    check_out,
                    ChannelNotConfigured(channel.value, prop.id),
                )
            adapter = self.get_adapter(channel)
            candidate = await adapter.fetch_quote(
                prop.id, listing_url, check_in, check_out, party=party, timeout=timeout
            )
            try:
                quote = self.validator.validate(candidate)
            except RateCompareError as e:
                raise RateFetchingError(channel.value, prop.id, check_in, check_out, e) from e
        except RateFetchingError as e:
            outcome: Union[RateQuote, RateFetchingError] = e
        except RateCompareError as e:
            # Adapter creation problems (e.g. no adapter registered).
            outcome = RateFetchingError(channel.value, prop.id, check_in, check_out, e)
        except Exception as e:
            log.error("channel_fetch_unexpected_error", error=str(e), exc_info=True)
            outcome = RateFetchingError(channel.value, prop.id, check_in, check_out, e)
        else:
            outcome = quote

        latency_ms = round((time.monotonic() - started) * 1000, 1)
        if isinstance(outcome, RateFetchingError):
            log.warning(
                "channel_fetch_failed",
                error_code=outcome.cause_code,
                error_kind=outcome.kind.value,
                attempts=outcome.attempts,
                error=str(outcome.cause),
                latency_ms=latency_ms,
            )
            payload = {
                "channel": channel.value,
                "property_id": prop.id,
                "outcome": "failure",
                "error_kind": outcome.kind.value,
                "error_code": outcome.cause_code,
                "attempts": outcome.attempts,
                "latency_ms": latency_ms,
            }
        else:
            log.info(
                "channel_fetch_succeeded",
                total=str(outcome.total_price),
                available=outcome.availability,
                latency_ms=latency_ms,
            )
            payload = {
                "channel": channel.value,
                "property_id": prop.id,
                "outcome": "success",
                "error_kind": None,
                "error_code": None,
                "attempts": None,
                "latency_ms": latency_ms,
            }

        await self._emit(EVENT_CHANNEL_FETCHED, payload)
        return outcome
