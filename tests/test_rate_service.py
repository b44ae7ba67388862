"""Tests for the comparison orchestrator.

Real page adapters are wired to an ``httpx.MockTransport`` so each test
exercises the whole fetch, extract, validate, cache and compare pipeline.
"""

import asyncio
from datetime import date
from decimal import Decimal

import httpx
import pytest

from ratecompare.config import PropertyConfig, RateCompareConfig
from ratecompare.core.exceptions import (
    AllChannelsFailedError,
    InvalidRequestError,
    PropertyNotFound,
)
from ratecompare.core.models import Channel, PartyComposition
from ratecompare.scrapers.factory import AdapterFactory
from ratecompare.scrapers.register_adapters import register_all_adapters
from ratecompare.services.cache_service import InMemoryRateCache
from ratecompare.services.rate_service import RateComparisonService

from conftest import CHECK_IN, CHECK_OUT, price_page


# ============================================================================
# FIXTURES
# ============================================================================

PAGES = {
    "www.vrbo.com": price_page(
        "3 nights x $100.00", "Cleaning fee $50.00", "Service fee $40.00",
        "Taxes $30.00", "Total $420.00",
    ),
    "www.booking.com": price_page(
        "3 nights x $100.00", "Cleaning fee $20.00", "Service fee $36.00",
        "Taxes $24.00", "Total $380.00",
    ),
    "www.expedia.com": price_page(
        "3 nights x $110.00", "Cleaning fee $40.00", "Service fee $45.00",
        "Taxes $35.00", "Total $450.00",
    ),
}

LISTINGS = {
    Channel.VRBO: "https://www.vrbo.com/1234567",
    Channel.BOOKING: "https://www.booking.com/hotel/us/beach-house.html",
    Channel.EXPEDIA: "https://www.expedia.com/not-a-hotel-page",
}


class PageServer:
    """MockTransport handler serving canned listing pages by host.

    Tracks how many requests are being answered at once; ``delay`` keeps
    each response open long enough for overlapping fetches to show.
    """

    def __init__(self, pages, delay: float = 0.0):
        self.pages = dict(pages)
        self.delay = delay
        self.requests = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        page = self.pages.get(request.url.host)
        if page is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=page)


@pytest.fixture
def server():
    return PageServer(PAGES)


@pytest.fixture
def make_service(fast_config, server, mock_client, no_sleep):
    """Build a service over real adapters answering from ``server``."""

    def build(listings=None, **kwargs):
        config = RateCompareConfig(
            channels={channel: fast_config for channel in Channel},
            properties=[
                PropertyConfig(
                    id="beach-house",
                    name="Beach House",
                    listings=LISTINGS if listings is None else listings,
                )
            ],
        )
        kwargs.setdefault("cache", InMemoryRateCache(ttl=900))
        kwargs.setdefault("factory", register_all_adapters(AdapterFactory()))
        return RateComparisonService(
            config,
            adapter_dependencies={"http_client": mock_client(server), "sleep": no_sleep},
            **kwargs,
        )

    return build


# ============================================================================
# TESTS: COMPARISON
# ============================================================================

class TestGetComparison:
    """End-to-end comparisons through the orchestrator."""

    async def test_one_bad_channel_does_not_stop_the_others(self, make_service):
        service = make_service()

        result = await service.get_comparison("beach-house", None, CHECK_IN, CHECK_OUT)

        assert sorted(q.channel for q in result.quotes) == ["booking", "vrbo"]
        assert result.best_quote.channel == "booking"
        assert result.savings.amount == Decimal("40.00")
        assert result.savings.percentage == Decimal("9.52")
        assert list(result.failures) == ["expedia"]
        assert "Invalid expedia listing URL" in result.failures["expedia"]
        assert result.from_cache is False

    async def test_validated_quotes_satisfy_sum_invariant(self, make_service):
        result = await make_service().get_comparison(
            "beach-house", ["vrbo", "booking"], CHECK_IN, CHECK_OUT
        )

        for quote in result.quotes:
            assert quote.base_price + quote.fees.total() == quote.total_price

    async def test_second_request_is_served_from_cache(self, make_service, server):
        service = make_service()

        first = await service.get_comparison("beach-house", ["vrbo", "booking"], CHECK_IN, CHECK_OUT)
        fetched = len(server.requests)
        second = await service.get_comparison("beach-house", ["booking", "vrbo"], CHECK_IN, CHECK_OUT)

        assert fetched == 2
        assert len(server.requests) == fetched
        assert second.from_cache is True
        assert second.best_quote.channel == first.best_quote.channel

    async def test_cached_result_keeps_channel_failures(self, make_service, server):
        service = make_service()

        first = await service.get_comparison("beach-house", None, CHECK_IN, CHECK_OUT)
        second = await service.get_comparison("beach-house", None, CHECK_IN, CHECK_OUT)

        assert second.from_cache is True
        assert len(server.requests) == 2
        assert list(second.failures) == ["expedia"]
        assert second.failures == first.failures

    async def test_different_party_is_not_a_cache_hit(self, make_service, server):
        service = make_service()

        await service.get_comparison("beach-house", ["vrbo"], CHECK_IN, CHECK_OUT)
        result = await service.get_comparison(
            "beach-house", ["vrbo"], CHECK_IN, CHECK_OUT, party=PartyComposition(adults=4)
        )

        assert result.from_cache is False
        assert len(server.requests) == 2
        assert server.requests[-1].url.params["adults"] == "4"

    async def test_all_channels_failed(self, make_service):
        service = make_service(listings={Channel.EXPEDIA: "https://www.expedia.com/nope"})

        with pytest.raises(AllChannelsFailedError) as exc_info:
            await service.get_comparison("beach-house", None, CHECK_IN, CHECK_OUT)

        error = exc_info.value
        assert [f.channel for f in error.failures] == ["expedia"]
        assert error.context["failures"] == {"expedia": "INVALID_LISTING_URL"}

    async def test_requested_channel_without_listing(self, make_service):
        service = make_service()

        with pytest.raises(AllChannelsFailedError) as exc_info:
            await service.get_comparison("beach-house", ["airbnb"], CHECK_IN, CHECK_OUT)

        assert exc_info.value.failures[0].cause_code == "CHANNEL_NOT_CONFIGURED"

    async def test_upstream_errors_are_collected(self, make_service, server):
        del server.pages["www.booking.com"]
        service = make_service()

        result = await service.get_comparison("beach-house", ["vrbo", "booking"], CHECK_IN, CHECK_OUT)

        assert [q.channel for q in result.quotes] == ["vrbo"]
        assert result.savings is None
        assert "HTTP 404" in result.failures["booking"]

    async def test_adapter_construction_error_is_isolated(self, make_service):
        class BookingSetupFails(AdapterFactory):
            def create_adapter(self, channel, **kwargs):
                if channel is Channel.BOOKING:
                    raise TypeError("unexpected keyword argument 'proxy'")
                return super().create_adapter(channel, **kwargs)

        service = make_service(factory=register_all_adapters(BookingSetupFails()))
        events = []
        service.on("channel-fetched", events.append)

        result = await service.fetch_rates("beach-house", CHECK_IN, CHECK_OUT)

        assert result.best_quote.channel == "vrbo"
        assert "unexpected keyword argument" in result.failures["booking"]
        booking = next(e for e in events if e["channel"] == "booking")
        assert booking["error_code"] == "TypeError"
        assert booking["error_kind"] == "permanent"

    async def test_adapters_are_reused_per_channel(self, make_service):
        service = make_service()

        assert service.get_adapter(Channel.VRBO) is service.get_adapter(Channel.VRBO)
        assert service.get_adapter(Channel.VRBO) is not service.get_adapter(Channel.BOOKING)


class TestConcurrency:
    """The fetch cap is shared by every comparison on a service."""

    async def test_cap_holds_across_concurrent_comparisons(self, make_service, server):
        server.delay = 0.01
        listings = {
            **LISTINGS,
            Channel.EXPEDIA: "https://www.expedia.com/Beach-House.h5551212.Hotel-Information",
        }
        service = make_service(listings=listings, max_concurrency=2)

        results = await asyncio.gather(*(
            service.get_comparison("beach-house", None, CHECK_IN, CHECK_OUT)
            for _ in range(3)
        ))

        assert len(server.requests) == 9
        assert server.peak_in_flight == 2
        assert [r.best_quote.channel for r in results] == ["booking"] * 3

    async def test_single_comparison_uses_the_cap(self, make_service, server):
        server.delay = 0.01
        listings = {
            **LISTINGS,
            Channel.EXPEDIA: "https://www.expedia.com/Beach-House.h5551212.Hotel-Information",
        }

        result = await make_service(listings=listings, max_concurrency=3).get_comparison(
            "beach-house", None, CHECK_IN, CHECK_OUT
        )

        assert len(result.quotes) == 3
        assert server.peak_in_flight == 3


class TestRequestValidation:

    async def test_unknown_property(self, make_service):
        with pytest.raises(PropertyNotFound):
            await make_service().get_comparison("castle", None, CHECK_IN, CHECK_OUT)

    async def test_check_out_must_follow_check_in(self, make_service):
        with pytest.raises(InvalidRequestError):
            await make_service().get_comparison("beach-house", None, CHECK_OUT, CHECK_IN)

        with pytest.raises(InvalidRequestError):
            await make_service().get_comparison("beach-house", None, CHECK_IN, CHECK_IN)

    async def test_unknown_channel(self, make_service):
        with pytest.raises(InvalidRequestError) as exc_info:
            await make_service().get_comparison("beach-house", ["vrbo", "hotels"], CHECK_IN, CHECK_OUT)

        assert exc_info.value.context["channel"] == "hotels"

    async def test_empty_channel_list(self, make_service):
        with pytest.raises(InvalidRequestError):
            await make_service().get_comparison("beach-house", [], CHECK_IN, CHECK_OUT)

    async def test_property_without_listings(self, make_service):
        with pytest.raises(InvalidRequestError):
            await make_service(listings={}).get_comparison("beach-house", None, CHECK_IN, CHECK_OUT)


# ============================================================================
# TESTS: EVENTS
# ============================================================================

class TestEvents:
    """Widget-facing events and their handlers."""

    async def test_ready_event(self, make_service):
        service = make_service()
        seen = []
        service.on("ready", seen.append)

        await service.start()

        assert seen == [{"properties": ["beach-house"]}]

    async def test_rates_loaded(self, make_service):
        service = make_service()
        loaded = []

        async def on_loaded(payload):
            loaded.append(payload)

        service.on("rates-loaded", on_loaded)

        result = await service.fetch_rates("beach-house", CHECK_IN, CHECK_OUT, channels=["vrbo"])

        assert loaded == [{"property_id": "beach-house", "result": result}]

    async def test_error_event_then_reraise(self, make_service):
        service = make_service()
        errors = []
        service.on("error", errors.append)

        with pytest.raises(PropertyNotFound):
            await service.fetch_rates("castle", CHECK_IN, CHECK_OUT)

        assert errors[0]["property_id"] == "castle"
        assert errors[0]["error"]["code"] == "PROPERTY_NOT_FOUND"

    async def test_channel_fetched_events(self, make_service):
        service = make_service()
        events = []
        service.on("channel-fetched", events.append)

        await service.fetch_rates("beach-house", CHECK_IN, CHECK_OUT)

        by_channel = {e["channel"]: e for e in events}
        assert set(by_channel) == {"vrbo", "booking", "expedia"}
        assert by_channel["vrbo"]["outcome"] == "success"
        assert by_channel["vrbo"]["latency_ms"] >= 0
        assert by_channel["expedia"]["outcome"] == "failure"
        assert by_channel["expedia"]["error_kind"] == "permanent"
        assert by_channel["expedia"]["error_code"] == "INVALID_LISTING_URL"
        assert by_channel["expedia"]["attempts"] == 1

    async def test_handler_failure_does_not_propagate(self, make_service):
        service = make_service()

        def broken(payload):
            raise RuntimeError("listener bug")

        service.on("rates-loaded", broken)
        service.on("channel-fetched", broken)

        result = await service.fetch_rates("beach-house", CHECK_IN, CHECK_OUT, channels=["vrbo"])

        assert result.best_quote.channel == "vrbo"

    async def test_off_removes_handler(self, make_service):
        service = make_service()
        seen = []
        service.on("ready", seen.append)
        service.off("ready", seen.append)

        await service.start()

        assert seen == []

    def test_unknown_event(self, make_service):
        with pytest.raises(ValueError):
            make_service().on("rates-updated", print)

    async def test_close_releases_adapters(self, make_service):
        service = make_service()
        service.get_adapter(Channel.VRBO)

        await service.close()

        assert service._adapters == {}
