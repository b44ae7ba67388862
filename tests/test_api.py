"""Tests for the HTTP API (FastAPI TestClient, service mocked)."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from ratecompare.core.exceptions import (
    AllChannelsFailedError,
    InvalidListingURL,
    InvalidRequestError,
    PropertyNotFound,
    RateFetchingError,
)
from ratecompare.core.models import PartyComposition
from ratecompare.dependencies import get_cache, get_rate_service
from ratecompare.main import create_app
from ratecompare.services.cache_service import InMemoryRateCache
from ratecompare.services.comparison import ComparisonEngine

from conftest import CHECK_IN, CHECK_OUT

RATES_URL = "/api/v1/rates"
PARAMS = {"property_id": "beach-house", "check_in": "2026-07-01", "check_out": "2026-07-04"}


@pytest.fixture
def service():
    service = MagicMock()
    service.fetch_rates = AsyncMock()
    return service


@pytest.fixture
def client(service):
    """TestClient without lifespan; the service is injected directly."""
    app = create_app()
    app.dependency_overrides[get_rate_service] = lambda: service
    app.dependency_overrides[get_cache] = lambda: InMemoryRateCache()
    return TestClient(app)


class TestRatesEndpoint:

    def test_returns_comparison(self, client, service, make_quote):
        result = ComparisonEngine().compare(
            [make_quote("airbnb", "100.00"), make_quote("vrbo", "80.00")],
            "beach-house",
            CHECK_IN,
            CHECK_OUT,
        )
        result.failures = {"expedia": "Invalid expedia listing URL: x"}
        service.fetch_rates.return_value = result

        response = client.get(RATES_URL, params={**PARAMS, "channels": "airbnb, vrbo", "adults": 3})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        data = body["data"]
        assert data["best_channel"] == "vrbo"
        assert Decimal(data["savings"]["amount"]) == Decimal("20")
        assert Decimal(data["savings"]["percentage"]) == Decimal("20.00")
        assert len(data["quotes"]) == 2
        assert data["quotes"][0]["nights"] == 3
        assert data["failures"] == {"expedia": "Invalid expedia listing URL: x"}

        args, kwargs = service.fetch_rates.await_args
        assert args == ("beach-house", date(2026, 7, 1), date(2026, 7, 4))
        assert kwargs["channels"] == ["airbnb", "vrbo"]
        assert kwargs["party"] == PartyComposition(adults=3)

    def test_channels_default_to_none(self, client, service, make_quote):
        service.fetch_rates.return_value = ComparisonEngine().compare(
            [make_quote("vrbo", "80.00")], "beach-house", CHECK_IN, CHECK_OUT
        )

        response = client.get(RATES_URL, params=PARAMS)

        assert response.status_code == 200
        assert response.json()["data"]["savings"] is None
        assert service.fetch_rates.await_args.kwargs["channels"] is None

    def test_unknown_property_is_404(self, client, service):
        service.fetch_rates.side_effect = PropertyNotFound("castle")

        response = client.get(RATES_URL, params={**PARAMS, "property_id": "castle"})

        assert response.status_code == 404
        assert response.json()["status"] == "error"
        assert response.json()["error"]["code"] == "PROPERTY_NOT_FOUND"

    def test_invalid_request_is_400(self, client, service):
        service.fetch_rates.side_effect = InvalidRequestError("check_out must be after check_in")

        response = client.get(RATES_URL, params=PARAMS)

        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "INVALID_REQUEST",
            "message": "check_out must be after check_in",
            "field": None,
            "context": {},
        }

    def test_all_channels_failed_is_502(self, client, service):
        failure = RateFetchingError(
            "vrbo", "beach-house", CHECK_IN, CHECK_OUT, InvalidListingURL("vrbo", "bad")
        )
        service.fetch_rates.side_effect = AllChannelsFailedError("beach-house", [failure])

        response = client.get(RATES_URL, params=PARAMS)

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "ALL_CHANNELS_FAILED"
        assert error["context"]["failures"] == {"vrbo": "INVALID_LISTING_URL"}

    @pytest.mark.parametrize(
        "params,field",
        [
            ({"property_id": "beach-house", "check_out": "2026-07-04"}, "check_in"),
            ({**PARAMS, "check_in": "2026-13-01"}, "check_in"),
            ({**PARAMS, "adults": 0}, "adults"),
        ],
    )
    def test_malformed_query_is_400(self, client, service, params, field):
        response = client.get(RATES_URL, params=params)

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_REQUEST"
        assert error["field"] == field
        service.fetch_rates.assert_not_awaited()


class TestHealthEndpoint:

    def test_health(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["cache"] == "ok"
        assert body["services"]["cache_backend"] == "InMemoryRateCache"

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/api/v1/health"
