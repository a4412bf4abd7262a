"""
Tests for the upstream hotel API client.
"""

import httpx
import pytest

from service_hotels.app.adapters import HotelApiClient, build_price_query
from shared.errors import NotFoundError, UpstreamServiceError
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig


NO_DELAY = RetryConfig(max_attempts=3, base_delay=0, jitter=False)


def make_client(handler, **kwargs) -> HotelApiClient:
    kwargs.setdefault("retry_config", NO_DELAY)
    return HotelApiClient(
        "https://hotelapi.example",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestBuildPriceQuery:
    def test_drops_missing_values(self):
        query = build_price_query(destination_id="WD0M", checkin="2025-03-01", checkout=None, guests="2")

        assert query == {"destination_id": "WD0M", "checkin": "2025-03-01", "guests": "2"}

    def test_ignores_unknown_fields(self):
        assert build_price_query(destination_id="WD0M", poll="true") == {"destination_id": "WD0M"}


class TestHotelApiClient:
    """Test cases for HotelApiClient."""

    @pytest.mark.asyncio
    async def test_list_hotels(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": "diH7", "name": "The Fullerton Hotel"}])

        client = make_client(handler)
        try:
            hotels = await client.list_hotels("WD0M")
        finally:
            await client.close()

        assert hotels == [{"id": "diH7", "name": "The Fullerton Hotel"}]
        assert seen[0].url.path == "/api/hotels"
        assert seen[0].url.params["destination_id"] == "WD0M"

    @pytest.mark.asyncio
    async def test_hotel_prices_path_and_query(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"completed": False, "rooms": []})

        client = make_client(handler)
        query = build_price_query(destination_id="WD0M", checkin="2025-03-01", guests="2")
        try:
            prices = await client.get_hotel_prices("diH7", query)
        finally:
            await client.close()

        assert prices == {"completed": False, "rooms": []}
        assert seen[0].url.path == "/api/hotels/diH7/price"
        assert dict(seen[0].url.params) == query

    @pytest.mark.asyncio
    async def test_search_prices(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/hotels/prices"
            return httpx.Response(200, json={"completed": True, "hotels": [{"id": "diH7", "price": 210.5}]})

        client = make_client(handler)
        try:
            prices = await client.search_prices({"destination_id": "WD0M"})
        finally:
            await client.close()

        assert prices["hotels"][0]["price"] == 210.5

    @pytest.mark.asyncio
    async def test_not_found(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(404, json={"error": "not found"})

        client = make_client(handler, failure_threshold=1)

        with pytest.raises(NotFoundError):
            await client.get_hotel("missing")

        assert calls == 1
        # A missing hotel says nothing about upstream health
        assert client.circuit_breaker.is_open() is False

    @pytest.mark.asyncio
    async def test_error_status_raises_upstream_error(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(UpstreamServiceError) as exc_info:
            await client.get_hotel("diH7")

        assert exc_info.value.status_code == 502
        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_transport_errors_are_retried(self):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"id": "diH7"})

        client = make_client(handler)

        assert await client.get_hotel("diH7") == {"id": "diH7"}
        assert attempts == 3

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_upstream_error(self):
        attempts = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal attempts
            attempts += 1
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(UpstreamServiceError) as exc_info:
            await client.get_hotel("diH7")

        assert attempts == 3
        assert exc_info.value.details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self):
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        client = make_client(handler, failure_threshold=2, recovery_timeout=60)

        for _ in range(2):
            with pytest.raises(UpstreamServiceError):
                await client.get_hotel("diH7")

        assert client.circuit_breaker.is_open()

        with pytest.raises(UpstreamServiceError, match="OPEN"):
            await client.get_hotel("diH7")
        assert calls == 2

    @pytest.mark.asyncio
    async def test_records_upstream_latency(self):
        metrics = MetricsCollector("hotels")
        client = make_client(lambda request: httpx.Response(200, json=[]), metrics=metrics)

        await client.list_hotels("WD0M")

        count = metrics.get_sample_value("upstream_request_duration_seconds_count", operation="list_hotels")
        assert count == 1
