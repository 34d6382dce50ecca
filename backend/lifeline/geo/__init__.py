"""
Geo Utility Package

Great-circle distance, ETA estimation and display formatting.
"""

from .distance import (
    EARTH_RADIUS_KM,
    DEFAULT_SPEED_KMH,
    haversine_km,
    to_lat_lng,
    distance_between,
    same_point,
    eta_minutes,
    estimate_duration_seconds,
    format_eta,
    format_time_since,
    directions_url,
)

__all__ = [
    "EARTH_RADIUS_KM",
    "DEFAULT_SPEED_KMH",
    "haversine_km",
    "to_lat_lng",
    "distance_between",
    "same_point",
    "eta_minutes",
    "estimate_duration_seconds",
    "format_eta",
    "format_time_since",
    "directions_url",
]
