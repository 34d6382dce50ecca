"""
Routing Models

Raw route alternatives from the routing provider and the ranked,
display-ready routes produced by the route scorer.
"""

from pydantic import BaseModel, Field
from typing import List, Optional


class RouteAlternative(BaseModel):
    """One driving alternative as returned by the routing provider"""
    distance_meters: float = Field(..., ge=0)
    duration_seconds: float = Field(..., ge=0)
    duration_in_traffic_seconds: Optional[float] = None
    steps: List[str] = Field(default_factory=list)  # HTML instructions
    start_address: Optional[str] = None
    end_address: Optional[str] = None
    summary: Optional[str] = None

    @property
    def traffic_seconds(self) -> float:
        """Traffic-aware duration, falling back to the normal duration"""
        if self.duration_in_traffic_seconds is None:
            return self.duration_seconds
        return self.duration_in_traffic_seconds


class RankedRoute(BaseModel):
    """Scored route ready for display; rank 0 is the default selection"""
    rank: int
    selected: bool = False
    distance_km: float
    duration_minutes: int
    duration_in_traffic_minutes: int
    traffic_delay_minutes: int = 0
    traffic_delay_label: str = "No delay"
    eta_label: str
    instructions: List[str] = Field(default_factory=list)
    start_address: str = "Current Location"
    end_address: str = "Hospital"
    summary: Optional[str] = None
    directions_url: Optional[str] = None
    is_fallback: bool = False             # straight-line estimate, no provider data
