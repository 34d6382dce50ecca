"""
Proximity Ranking

Straight-line matching of cases to hospitals (at acceptance time) and of
pending cases to an ambulance crew (each viewer sees the list sorted by
its own distance).
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..geo import DEFAULT_SPEED_KMH, distance_between, eta_minutes, format_eta
from ..models.case import EmergencyCase
from ..models.hospital import Hospital


@dataclass
class HospitalCandidate:
    """Hospital ranked by distance from a case location"""
    hospital: Hospital
    distance_km: float
    eta_minutes: int

    @property
    def available(self) -> bool:
        return self.hospital.has_capacity

    def to_dict(self) -> Dict[str, Any]:
        data = self.hospital.to_dict()
        data.update({
            'distanceKm': round(self.distance_km, 2),
            'etaMinutes': self.eta_minutes,
            'eta': format_eta(self.eta_minutes),
            'available': self.available,
        })
        return data


@dataclass
class CaseCandidate:
    """Pending case as seen from one ambulance"""
    case: EmergencyCase
    distance_km: Optional[float] = None
    eta_minutes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.case.to_summary()
        data['symptoms'] = self.case.patient.symptoms
        data['distanceKm'] = round(self.distance_km, 2) if self.distance_km is not None else None
        data['etaMinutes'] = self.eta_minutes
        return data


def rank_hospitals(
    location: Any,
    hospitals: Iterable[Hospital],
    only_available: bool = True,
    speed_kmh: float = DEFAULT_SPEED_KMH
) -> List[HospitalCandidate]:
    """
    Rank hospitals by straight-line distance from a case

    Args:
        location: Case location (GeoPoint-like or (lat, lng))
        hospitals: Candidate hospitals
        only_available: Drop hospitals with no free beds
        speed_kmh: Speed used for the ETA estimate

    Returns:
        Candidates, closest first (hospitals without a location are skipped)
    """
    candidates = []
    for hospital in hospitals:
        if hospital.location is None:
            continue
        if only_available and not hospital.has_capacity:
            continue
        distance = distance_between(location, hospital.location)
        candidates.append(HospitalCandidate(
            hospital=hospital,
            distance_km=distance,
            eta_minutes=eta_minutes(distance, speed_kmh),
        ))

    candidates.sort(key=lambda c: (c.distance_km, c.hospital.id))
    return candidates


def rank_cases_for_ambulance(
    ambulance_location: Any,
    cases: Iterable[EmergencyCase],
    speed_kmh: float = DEFAULT_SPEED_KMH
) -> List[CaseCandidate]:
    """
    Sort pending cases by distance from one ambulance

    Without a known ambulance location the input order is kept and no
    distances are reported.
    """
    cases = list(cases)
    if ambulance_location is None:
        return [CaseCandidate(case=c) for c in cases]

    candidates = []
    for case in cases:
        distance = distance_between(ambulance_location, case.location)
        candidates.append(CaseCandidate(
            case=case,
            distance_km=distance,
            eta_minutes=eta_minutes(distance, speed_kmh),
        ))

    candidates.sort(key=lambda c: c.distance_km)
    return candidates
