"""
External Provider Services

Routing (Google Directions) and geocoding (Nominatim) clients.
"""

from .base import APIStatus, CacheEntry, ProviderClient
from .routing_service import (
    RoutingService,
    close_routing_service,
    get_routing_service,
    init_routing_service,
)
from .geocoding_service import (
    GeocodingService,
    close_geocoding_service,
    get_geocoding_service,
    init_geocoding_service,
)

__all__ = [
    "APIStatus",
    "CacheEntry",
    "ProviderClient",
    "RoutingService",
    "close_routing_service",
    "get_routing_service",
    "init_routing_service",
    "GeocodingService",
    "close_geocoding_service",
    "get_geocoding_service",
    "init_geocoding_service",
]
