"""
External Provider Service Tests

Routing (Google Directions) and geocoding (Nominatim) clients with the
HTTP layer replaced by fakes.
"""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, patch

import aiohttp

from lifeline.errors import GeoLookupFailed
from lifeline.models import GeoPoint
from lifeline.services import GeocodingService, RoutingService


class FakeResponse:
    """aiohttp response stand-in usable as an async context manager"""

    def __init__(self, status=200, payload=None, error=None, body_error=None):
        self.status = status
        self.payload = payload
        self.error = error
        self.body_error = body_error

    async def json(self, content_type=None):
        if self.body_error:
            raise self.body_error
        return self.payload

    async def __aenter__(self):
        if self.error:
            raise self.error
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    closed = False

    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None):
        self.calls.append((url, params))
        return self.response

    async def close(self):
        self.closed = True


DIRECTIONS_OK = {
    "status": "OK",
    "routes": [
        {
            "summary": "Hosur Rd",
            "legs": [{
                "distance": {"value": 5200},
                "duration": {"value": 900},
                "duration_in_traffic": {"value": 1500},
                "start_address": "MG Road",
                "end_address": "St. John's Hospital",
                "steps": [{"html_instructions": "Head <b>south</b>"}],
            }],
        },
        {
            "summary": "Inner Ring Rd",
            "legs": [{
                "distance": {"value": 6100},
                "duration": {"value": 1000},
                "steps": [],
            }],
        },
    ],
}


# ============================================
# Provider Base Tests
# ============================================

class TestProviderClient:
    """Test HTTP error mapping shared by all providers"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,message", [
        (401, "not authorized"),
        (403, "not authorized"),
        (429, "Rate limit"),
        (500, "API error 500"),
    ])
    async def test_http_errors(self, status, message):
        service = GeocodingService()
        service._session = FakeSession(FakeResponse(status=status))

        with pytest.raises(GeoLookupFailed) as excinfo:
            await service.reverse(12.9716, 77.5946)

        assert message in excinfo.value.message
        assert service.status.error_count == 1
        assert service.status.last_error == excinfo.value.message

    @pytest.mark.asyncio
    async def test_timeout(self):
        service = GeocodingService()
        service._session = FakeSession(FakeResponse(error=asyncio.TimeoutError()))

        with pytest.raises(GeoLookupFailed, match="timeout"):
            await service.reverse(12.9716, 77.5946)

    @pytest.mark.asyncio
    async def test_network_error(self):
        service = GeocodingService()
        service._session = FakeSession(FakeResponse(error=aiohttp.ClientConnectionError("refused")))

        with pytest.raises(GeoLookupFailed, match="Network error"):
            await service.reverse(12.9716, 77.5946)

    @pytest.mark.asyncio
    async def test_unparseable_body(self):
        service = GeocodingService()
        service._session = FakeSession(FakeResponse(body_error=json.JSONDecodeError("Expecting value", "<html>", 0)))

        with pytest.raises(GeoLookupFailed, match="Invalid JSON"):
            await service.reverse(12.9716, 77.5946)
        assert service.status.error_count == 1

    @pytest.mark.asyncio
    async def test_close(self):
        service = GeocodingService()
        session = FakeSession(FakeResponse())
        service._session = session
        await service.close()
        assert session.closed


# ============================================
# Geocoding Tests
# ============================================

class TestGeocodingService:
    """Test Nominatim lookups"""

    @pytest.mark.asyncio
    async def test_reverse(self):
        service = GeocodingService()
        session = FakeSession(FakeResponse(payload={"display_name": "MG Road, Bengaluru"}))
        service._session = session

        assert await service.reverse(12.9716, 77.5946) == "MG Road, Bengaluru"
        url, params = session.calls[0]
        assert url.endswith("/reverse")
        assert params["lat"] == 12.9716
        assert params["lon"] == 77.5946

    @pytest.mark.asyncio
    async def test_reverse_cached_per_rounded_coordinate(self):
        service = GeocodingService(precision=3)
        with patch.object(service, "_get_json", new=AsyncMock(return_value={"display_name": "MG Road"})) as get_json:
            await service.reverse(12.97161, 77.59461)
            await service.reverse(12.97159, 77.59459)

        assert get_json.await_count == 1
        assert service.get_cache_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_reverse_no_result(self):
        service = GeocodingService()
        with patch.object(service, "_get_json", new=AsyncMock(return_value={"error": "Unable to geocode"})):
            with pytest.raises(GeoLookupFailed):
                await service.reverse(0.0, 0.0)

    @pytest.mark.asyncio
    async def test_disabled(self):
        service = GeocodingService(enabled=False)
        assert not service.is_configured
        with pytest.raises(GeoLookupFailed):
            await service.reverse(12.9716, 77.5946)

    @pytest.mark.asyncio
    async def test_forward(self):
        service = GeocodingService()
        payload = [{"lat": "12.9352", "lon": "77.6146", "display_name": "St. John's"}]
        with patch.object(service, "_get_json", new=AsyncMock(return_value=payload)) as get_json:
            point = await service.forward("  St. John's   Hospital ")

        assert point == GeoPoint(lat=12.9352, lng=77.6146)
        assert get_json.await_args.args[1]["q"] == "St. John's Hospital"

    @pytest.mark.asyncio
    async def test_forward_no_match(self):
        service = GeocodingService()
        with patch.object(service, "_get_json", new=AsyncMock(return_value=[])):
            with pytest.raises(GeoLookupFailed):
                await service.forward("Nowhere")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"error": "Unable to geocode"},
        [{"display_name": "no coordinates"}],
        [{"lat": "north", "lon": "77.6"}],
        "not a list",
    ])
    async def test_forward_malformed_payload(self, payload):
        service = GeocodingService()
        with patch.object(service, "_get_json", new=AsyncMock(return_value=payload)):
            with pytest.raises(GeoLookupFailed):
                await service.forward("Nowhere")
        assert service.get_cache_stats()["entries"] == 0


# ============================================
# Routing Tests
# ============================================

class TestRoutingService:
    """Test Directions lookups"""

    @pytest.mark.asyncio
    async def test_not_configured(self):
        service = RoutingService(api_key="")
        assert not service.is_configured
        with pytest.raises(GeoLookupFailed, match="not configured"):
            await service.route((12.95, 77.60), (12.9352, 77.6146))

    @pytest.mark.asyncio
    async def test_parses_alternatives(self):
        service = RoutingService(api_key="test-key")
        with patch.object(service, "_get_json", new=AsyncMock(return_value=DIRECTIONS_OK)) as get_json:
            routes = await service.route((12.95, 77.60), GeoPoint(lat=12.9352, lng=77.6146))

        assert len(routes) == 2
        assert routes[0].distance_meters == 5200
        assert routes[0].traffic_seconds == 1500
        assert routes[0].steps == ["Head <b>south</b>"]
        assert routes[1].duration_in_traffic_seconds is None
        assert routes[1].traffic_seconds == 1000

        params = get_json.await_args.args[1]
        assert params["alternatives"] == "true"
        assert params["departure_time"] == "now"
        assert params["key"] == "test-key"

    @pytest.mark.asyncio
    async def test_cached(self):
        service = RoutingService(api_key="test-key")
        with patch.object(service, "_get_json", new=AsyncMock(return_value=DIRECTIONS_OK)) as get_json:
            await service.route((12.95, 77.60), (12.9352, 77.6146))
            await service.route((12.95, 77.60), (12.9352, 77.6146))
        assert get_json.await_count == 1

    @pytest.mark.asyncio
    async def test_zero_results(self):
        service = RoutingService(api_key="test-key")
        with patch.object(service, "_get_json", new=AsyncMock(return_value={"status": "ZERO_RESULTS"})):
            assert await service.route((12.95, 77.60), (12.9352, 77.6146)) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["REQUEST_DENIED", "OVER_QUERY_LIMIT", "UNKNOWN_ERROR"])
    async def test_provider_status_errors(self, status):
        service = RoutingService(api_key="test-key")
        with patch.object(service, "_get_json", new=AsyncMock(return_value={"status": status})):
            with pytest.raises(GeoLookupFailed):
                await service.route((12.95, 77.60), (12.9352, 77.6146))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        ["not", "a", "dict"],
        "OK",
        {"status": "OK", "routes": "none"},
        {"status": "OK", "routes": [{"legs": "broken"}]},
    ])
    async def test_malformed_payload(self, payload):
        service = RoutingService(api_key="test-key")
        with patch.object(service, "_get_json", new=AsyncMock(return_value=payload)):
            with pytest.raises(GeoLookupFailed, match="Malformed"):
                await service.route((12.95, 77.60), (12.9352, 77.6146))

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "env-key")
        assert RoutingService().api_key == "env-key"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
