"""
Routing Service

Traffic-aware driving routes from the Google Directions API.

Features:
- Multiple alternatives with duration in traffic (departure_time=now)
- Short-lived response caching
- Provider errors surfaced as GeoLookupFailed so the route scorer can
  fall back to a straight-line estimate
"""

import os
import time
from typing import Any, Dict, List, Optional

from ..geo import to_lat_lng
from ..models.routing import RouteAlternative
from .base import ProviderClient


class RoutingService(ProviderClient):
    """
    Fetch route alternatives from Google Directions

    Usage:
        service = RoutingService()
        await service.initialize()
        routes = await service.route((12.95, 77.60), (12.9352, 77.6146))
    """

    provider_name = "google-directions"
    log_tag = "[ROUTING]"

    DEFAULT_BASE_URL = "https://maps.googleapis.com/maps/api/directions/json"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10,
        cache_ttl: int = 60
    ):
        """
        Initialize the Routing Service

        Args:
            api_key: Directions API key (defaults to GOOGLE_MAPS_API_KEY env var)
            base_url: Directions endpoint
            timeout: Request timeout in seconds
            cache_ttl: Cache time-to-live in seconds
        """
        self.api_key = api_key if api_key is not None else os.getenv("GOOGLE_MAPS_API_KEY", "")
        self.base_url = base_url
        super().__init__(timeout=timeout, cache_ttl=cache_ttl)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def route(
        self,
        origin: Any,
        destination: Any,
        departure_time: Optional[float] = None
    ) -> List[RouteAlternative]:
        """
        Driving alternatives between two points

        Returns:
            Alternatives in provider order (may be empty)

        Raises:
            GeoLookupFailed: not configured, quota/permission error or network failure
        """
        if not self.is_configured:
            raise self._fail("API key not configured")

        o_lat, o_lng = to_lat_lng(origin)
        d_lat, d_lng = to_lat_lng(destination)

        cache_key = f"route_{round(o_lat, 4)}_{round(o_lng, 4)}_{round(d_lat, 4)}_{round(d_lng, 4)}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        params = {
            'origin': f"{o_lat},{o_lng}",
            'destination': f"{d_lat},{d_lng}",
            'mode': 'driving',
            'alternatives': 'true',
            'departure_time': 'now' if departure_time is None else str(int(max(departure_time, time.time()))),
            'traffic_model': 'best_guess',
            'key': self.api_key,
        }

        data = await self._get_json(self.base_url, params)
        if not isinstance(data, dict):
            raise self._fail("Malformed directions response")
        status = data.get('status')

        if status == 'ZERO_RESULTS':
            self._mark_success()
            return []
        if status == 'REQUEST_DENIED':
            raise self._fail(f"Request denied: {data.get('error_message', 'check API key')}")
        if status == 'OVER_QUERY_LIMIT':
            raise self._fail("Quota exceeded")
        if status != 'OK':
            raise self._fail(f"Directions error: {status}")

        routes = data.get('routes')
        if not isinstance(routes, list):
            raise self._fail("Malformed directions response")

        try:
            alternatives = [self._parse_route(r) for r in routes if r.get('legs')]
        except (AttributeError, TypeError, KeyError, IndexError, ValueError):
            raise self._fail("Malformed directions response")
        self._set_cache(cache_key, alternatives)
        self._mark_success()
        return alternatives

    @staticmethod
    def _parse_route(route: Dict[str, Any]) -> RouteAlternative:
        leg = route['legs'][0]
        in_traffic = leg.get('duration_in_traffic')

        return RouteAlternative(
            distance_meters=leg.get('distance', {}).get('value', 0),
            duration_seconds=leg.get('duration', {}).get('value', 0),
            duration_in_traffic_seconds=in_traffic.get('value') if in_traffic else None,
            steps=[s.get('html_instructions', '') for s in leg.get('steps', [])],
            start_address=leg.get('start_address'),
            end_address=leg.get('end_address'),
            summary=route.get('summary'),
        )


# Global service instance
_routing_service: Optional[RoutingService] = None


def get_routing_service() -> RoutingService:
    """Get the global RoutingService instance"""
    global _routing_service
    if _routing_service is None:
        _routing_service = RoutingService()
    return _routing_service


async def init_routing_service(**kwargs) -> RoutingService:
    """Initialize the global RoutingService"""
    global _routing_service
    _routing_service = RoutingService(**kwargs)
    await _routing_service.initialize()
    return _routing_service


async def close_routing_service():
    """Close the global RoutingService"""
    global _routing_service
    if _routing_service:
        await _routing_service.close()
        _routing_service = None
