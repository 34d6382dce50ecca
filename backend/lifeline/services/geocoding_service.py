"""
Geocoding Service

Forward and reverse geocoding through OpenStreetMap Nominatim.
Nominatim requires an identifying User-Agent and asks for light use,
so answers are cached per rounded coordinate / normalized address.
"""

from typing import Optional

from ..models.geo import GeoPoint
from .base import ProviderClient


class GeocodingService(ProviderClient):
    """
    Resolve coordinates to addresses and back

    Usage:
        service = GeocodingService(user_agent="lifeline-dispatch/1.0")
        address = await service.reverse(12.9716, 77.5946)
    """

    provider_name = "nominatim"
    log_tag = "[GEOCODING]"

    DEFAULT_BASE_URL = "https://nominatim.openstreetmap.org"

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        user_agent: str = "lifeline-dispatch/1.0",
        enabled: bool = True,
        timeout: float = 5,
        cache_ttl: int = 600,
        precision: int = 4
    ):
        self.base_url = base_url.rstrip('/')
        self.enabled = enabled
        self.precision = precision
        super().__init__(timeout=timeout, cache_ttl=cache_ttl, headers={'User-Agent': user_agent})

    @property
    def is_configured(self) -> bool:
        return self.enabled

    async def reverse(self, lat: float, lng: float) -> str:
        """
        Address for a coordinate

        Raises:
            GeoLookupFailed: disabled, no result or provider failure
        """
        if not self.enabled:
            raise self._fail("Geocoding disabled")

        cache_key = f"rev_{round(lat, self.precision)}_{round(lng, self.precision)}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        data = await self._get_json(
            f"{self.base_url}/reverse",
            {'format': 'jsonv2', 'lat': lat, 'lon': lng, 'zoom': 18, 'addressdetails': 0}
        )
        if not isinstance(data, dict) or data.get('error') or not data.get('display_name'):
            raise self._fail(f"No address for ({lat}, {lng})")

        address = data['display_name']
        self._set_cache(cache_key, address)
        self._mark_success()
        return address

    async def forward(self, address: str) -> GeoPoint:
        """
        Coordinate for an address

        Raises:
            GeoLookupFailed: disabled, no match or provider failure
        """
        if not self.enabled:
            raise self._fail("Geocoding disabled")

        query = " ".join(address.split())
        if not query:
            raise self._fail("Empty address")

        cache_key = f"fwd_{query.lower()}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        data = await self._get_json(
            f"{self.base_url}/search",
            {'format': 'jsonv2', 'q': query, 'limit': 1}
        )
        if not isinstance(data, list) or not data:
            raise self._fail(f"No match for '{query}'")

        match = data[0]
        try:
            point = GeoPoint(lat=float(match['lat']), lng=float(match['lon']))
        except (TypeError, KeyError, ValueError):
            raise self._fail(f"Malformed match for '{query}'")
        self._set_cache(cache_key, point)
        self._mark_success()
        return point


# Global service instance
_geocoding_service: Optional[GeocodingService] = None


def get_geocoding_service() -> GeocodingService:
    """Get the global GeocodingService instance"""
    global _geocoding_service
    if _geocoding_service is None:
        _geocoding_service = GeocodingService()
    return _geocoding_service


async def init_geocoding_service(**kwargs) -> GeocodingService:
    """Initialize the global GeocodingService"""
    global _geocoding_service
    _geocoding_service = GeocodingService(**kwargs)
    await _geocoding_service.initialize()
    return _geocoding_service


async def close_geocoding_service():
    """Close the global GeocodingService"""
    global _geocoding_service
    if _geocoding_service:
        await _geocoding_service.close()
        _geocoding_service = None
