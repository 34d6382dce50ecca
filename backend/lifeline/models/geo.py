"""
Location Models

GPS points shared by cases, ambulances and hospitals.
"""

from pydantic import BaseModel, Field
from typing import Optional
import time


class GeoPoint(BaseModel):
    """GPS coordinate (latitude, longitude)"""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {"lat": 12.9716, "lng": 77.5946}
        }

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class Location(GeoPoint):
    """GPS point with an optional resolved address"""
    address: Optional[str] = None         # Filled in once geocoded

    def point(self) -> GeoPoint:
        return GeoPoint(lat=self.lat, lng=self.lng)


class AmbulanceLocation(Location):
    """Last known ambulance position"""
    last_updated: float = Field(default_factory=time.time)
    accuracy: Optional[float] = None      # meters, from device
