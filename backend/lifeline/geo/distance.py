"""
Geo Utility

Pure distance/ETA helpers used by matching, dispatch and live tracking.
No state, no I/O. Any traffic-aware duration from a routing provider
supersedes these estimates but they always remain available as fallback.
"""

import math
import time
from typing import Any, Optional, Tuple
from urllib.parse import urlencode


EARTH_RADIUS_KM = 6371.0

# Average intra-city ambulance speed
DEFAULT_SPEED_KMH = 40.0

# Float tolerance used for "same point" comparisons (km)
DISTANCE_EPSILON_KM = 1e-9


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance between two coordinates

    Args:
        lat1, lng1: First point in degrees
        lat2, lng2: Second point in degrees

    Returns:
        Distance in kilometers
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # Clamp for float drift on antipodal points
    a = min(1.0, max(0.0, a))

    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def to_lat_lng(point: Any) -> Tuple[float, float]:
    """Extract (lat, lng) from a tuple or any object with lat/lng attributes"""
    if isinstance(point, (tuple, list)):
        return float(point[0]), float(point[1])
    return float(point.lat), float(point.lng)


def distance_between(a: Any, b: Any) -> float:
    """Haversine distance between two points (tuples or lat/lng objects)"""
    lat1, lng1 = to_lat_lng(a)
    lat2, lng2 = to_lat_lng(b)
    return haversine_km(lat1, lng1, lat2, lng2)


def same_point(a: Any, b: Any) -> bool:
    """Check if two points coincide within float tolerance"""
    return distance_between(a, b) <= DISTANCE_EPSILON_KM


def eta_minutes(distance_km: float, speed_kmh: float = DEFAULT_SPEED_KMH) -> int:
    """
    Estimated travel time in whole minutes, rounded up

    Args:
        distance_km: Distance to travel
        speed_kmh: Assumed (or traffic-adjusted) speed

    Returns:
        Minutes, never negative; zero distance gives zero
    """
    if speed_kmh <= 0:
        raise ValueError(f"Speed must be positive, got {speed_kmh}")

    if distance_km <= 0:
        return 0

    minutes = distance_km / speed_kmh * 60
    # Round away float noise before ceil (2.0000000001 -> 2)
    return int(math.ceil(round(minutes, 6)))


def estimate_duration_seconds(
    distance_km: float,
    speed_kmh: float = DEFAULT_SPEED_KMH,
    traffic_factor: float = 1.0
) -> float:
    """
    Travel time estimate in seconds

    traffic_factor > 1.0 models congestion (1.5 = 50% slower).
    """
    if speed_kmh <= 0:
        raise ValueError(f"Speed must be positive, got {speed_kmh}")

    return max(0.0, distance_km) / speed_kmh * 3600 * max(traffic_factor, 0.0)


def format_eta(minutes: int) -> str:
    """Render minutes as 'X min' below an hour, else 'Yh Zm'"""
    minutes = max(0, int(minutes))

    if minutes < 60:
        return f"{minutes} min"

    hours, remaining = divmod(minutes, 60)
    return f"{hours}h {remaining}m"


def format_time_since(timestamp: float, now: Optional[float] = None) -> str:
    """Human readable age of a location update ('3 minutes ago')"""
    now = time.time() if now is None else now
    diff_mins = int(max(0.0, now - timestamp) // 60)

    if diff_mins < 1:
        return "Just now"
    if diff_mins == 1:
        return "1 minute ago"
    if diff_mins < 60:
        return f"{diff_mins} minutes ago"

    diff_hours = diff_mins // 60
    if diff_hours == 1:
        return "1 hour ago"
    return f"{diff_hours} hours ago"


def directions_url(origin: Any, destination: Any) -> str:
    """Google Maps driving directions link between two points"""
    o_lat, o_lng = to_lat_lng(origin)
    d_lat, d_lng = to_lat_lng(destination)

    params = urlencode({
        'api': 1,
        'origin': f"{o_lat},{o_lng}",
        'destination': f"{d_lat},{d_lng}",
        'travelmode': 'driving',
    })
    return f"https://www.google.com/maps/dir/?{params}"
