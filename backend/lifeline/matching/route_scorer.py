"""
Route Scoring

Ranks traffic-aware route alternatives from the routing provider and
falls back to a straight-line estimate when the provider has nothing to
offer. A route request never fails because of the provider.
"""

from typing import Any, List, Optional
import html
import re

from ..errors import GeoLookupFailed
from ..geo import (
    DEFAULT_SPEED_KMH,
    directions_url,
    distance_between,
    eta_minutes,
    format_eta,
)
from ..models.routing import RankedRoute, RouteAlternative

_TAG_RE = re.compile(r'<[^>]+>')
_SPACE_RE = re.compile(r'\s+')

MAX_INSTRUCTIONS = 5


def strip_html(text: str) -> str:
    """Plain text from a provider's HTML step instruction"""
    text = _TAG_RE.sub(' ', text or '')
    return _SPACE_RE.sub(' ', html.unescape(text)).strip()


def traffic_delay_label(delay_minutes: int) -> str:
    if delay_minutes <= 0:
        return "No delay"
    return f"+{delay_minutes} min delay"


def score_routes(
    alternatives: List[RouteAlternative],
    origin: Any = None,
    destination: Any = None
) -> List[RankedRoute]:
    """
    Rank alternatives by duration in traffic

    The first route is the default selection; the rest stay selectable.
    Equal traffic durations keep the provider's order.
    """
    url = directions_url(origin, destination) if origin is not None and destination is not None else None
    ordered = sorted(enumerate(alternatives), key=lambda pair: (pair[1].traffic_seconds, pair[0]))

    ranked = []
    for rank, (_, alt) in enumerate(ordered):
        duration_min = int(round(alt.duration_seconds / 60))
        traffic_min = int(round(alt.traffic_seconds / 60))
        delay_min = max(0, int(round((alt.traffic_seconds - alt.duration_seconds) / 60)))

        ranked.append(RankedRoute(
            rank=rank,
            selected=(rank == 0),
            distance_km=round(alt.distance_meters / 1000, 2),
            duration_minutes=duration_min,
            duration_in_traffic_minutes=traffic_min,
            traffic_delay_minutes=delay_min,
            traffic_delay_label=traffic_delay_label(delay_min),
            eta_label=format_eta(traffic_min),
            instructions=[strip_html(s) for s in alt.steps[:MAX_INSTRUCTIONS]],
            start_address=alt.start_address or "Current Location",
            end_address=alt.end_address or "Hospital",
            summary=alt.summary,
            directions_url=url,
        ))

    return ranked


def fallback_route(
    origin: Any,
    destination: Any,
    speed_kmh: float = DEFAULT_SPEED_KMH
) -> RankedRoute:
    """Single straight-line route used when no provider route exists"""
    distance = distance_between(origin, destination)
    minutes = eta_minutes(distance, speed_kmh)

    return RankedRoute(
        rank=0,
        selected=True,
        distance_km=round(distance, 2),
        duration_minutes=minutes,
        duration_in_traffic_minutes=minutes,
        eta_label=format_eta(minutes),
        summary="Straight-line estimate",
        directions_url=directions_url(origin, destination),
        is_fallback=True,
    )


class RouteScorer:
    """
    Ask the routing provider for alternatives and rank them

    Usage:
        scorer = RouteScorer(get_routing_service())
        routes = await scorer.rank_routes(ambulance_location, hospital.location)
    """

    def __init__(self, routing_provider=None, speed_kmh: float = DEFAULT_SPEED_KMH):
        self.routing_provider = routing_provider
        self.speed_kmh = speed_kmh

        # Statistics
        self.provider_routes = 0
        self.fallbacks = 0

    async def rank_routes(
        self,
        origin: Any,
        destination: Any,
        departure_time: Optional[float] = None
    ) -> List[RankedRoute]:
        alternatives: List[RouteAlternative] = []

        if self.routing_provider is not None:
            try:
                alternatives = await self.routing_provider.route(origin, destination, departure_time)
            except GeoLookupFailed as e:
                print(f"[ROUTING] Provider failed, using straight-line estimate: {e.message}")

        if not alternatives:
            self.fallbacks += 1
            return [fallback_route(origin, destination, self.speed_kmh)]

        self.provider_routes += 1
        return score_routes(alternatives, origin, destination)
