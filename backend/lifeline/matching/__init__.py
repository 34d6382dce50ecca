"""
Matching / Scoring Package

Hospital and case proximity ranking plus route scoring.
"""

from .ranking import (
    CaseCandidate,
    HospitalCandidate,
    rank_cases_for_ambulance,
    rank_hospitals,
)
from .route_scorer import (
    RouteScorer,
    fallback_route,
    score_routes,
    strip_html,
    traffic_delay_label,
)

__all__ = [
    "CaseCandidate",
    "HospitalCandidate",
    "rank_cases_for_ambulance",
    "rank_hospitals",
    "RouteScorer",
    "fallback_route",
    "score_routes",
    "strip_html",
    "traffic_delay_label",
]
