"""
Live Tracking Package

Location feed (ingest + publish with case context) and periodic
tracking sessions.
"""

from .location_feed import LocationFeed, LocationSample, TrackingUpdate
from .tracking_session import TrackingRegistry, TrackingSession

__all__ = [
    "LocationFeed",
    "LocationSample",
    "TrackingUpdate",
    "TrackingRegistry",
    "TrackingSession",
]
