"""
Live Tracking Feed

Ingests ambulance location samples and publishes them to the fleet
registry together with the case context they imply (severity,
destination and a freshly computed ETA).

On each sample:
1. Samples without a position are dropped (logged only).
2. The position is reverse geocoded; on failure a placeholder address is
   used. The position itself is always published.
3. Case-derived fields are recomputed and re-published every time, so
   observers never keep context from before a case transition.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple
import asyncio
import time

from ..errors import GeoLookupFailed, PreconditionFailed
from ..geo import DEFAULT_SPEED_KMH, distance_between, eta_minutes, format_eta
from ..models.case import EmergencyCase, Severity
from ..models.fleet import Ambulance, Destination
from ..models.geo import AmbulanceLocation


@dataclass
class LocationSample:
    """One device geolocation reading"""
    lat: Optional[float]
    lng: Optional[float]
    accuracy: Optional[float] = None
    timestamp: Optional[float] = None

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lng is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocationSample":
        """Accept both lat/lng and latitude/longitude keys"""
        lat = data.get('lat', data.get('latitude'))
        lng = data.get('lng', data.get('longitude'))
        return cls(
            lat=float(lat) if lat is not None else None,
            lng=float(lng) if lng is not None else None,
            accuracy=data.get('accuracy'),
            timestamp=data.get('timestamp'),
        )


@dataclass
class TrackingUpdate:
    """Published result of one ingested sample"""
    ambulance: Ambulance
    case_id: Optional[str]
    geocoded: bool
    distance_km: Optional[float] = None
    eta_minutes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ambulanceId': self.ambulance.id,
            'caseId': self.case_id,
            'status': self.ambulance.status.value,
            'location': self.ambulance.location.model_dump() if self.ambulance.location else None,
            'severity': self.ambulance.severity.value if self.ambulance.severity else None,
            'destination': self.ambulance.destination.model_dump() if self.ambulance.destination else None,
            'distanceKm': round(self.distance_km, 2) if self.distance_km is not None else None,
            'etaMinutes': self.eta_minutes,
            'geocoded': self.geocoded,
        }


class LocationFeed:
    """
    Publish ambulance positions with case context

    Usage:
        feed = LocationFeed(fleet, cases, geocoder=get_geocoding_service())
        feed.add_observer(emitter.emit_tracking_update)
        await feed.ingest("amb-001", LocationSample(lat=12.95, lng=77.60))
    """

    def __init__(
        self,
        fleet,
        cases,
        geocoder=None,
        speed_kmh: float = DEFAULT_SPEED_KMH,
        placeholder_address: str = "Location Update",
        pickup_label: str = "Patient pickup",
        clock: Callable[[], float] = time.time,
        max_attempts: int = 3
    ):
        self.fleet = fleet
        self.cases = cases
        self.geocoder = geocoder
        self.speed_kmh = speed_kmh
        self.placeholder_address = placeholder_address
        self.pickup_label = pickup_label
        self.clock = clock
        self.max_attempts = max_attempts

        self._observers: List[Callable] = []

        # Statistics
        self.samples_published = 0
        self.samples_rejected = 0
        self.geocode_failures = 0

    def add_observer(self, callback: Callable):
        """Register a callback receiving every TrackingUpdate"""
        if callback not in self._observers:
            self._observers.append(callback)

    def remove_observer(self, callback: Callable):
        if callback in self._observers:
            self._observers.remove(callback)

    async def ingest(self, ambulance_id: str, sample: LocationSample) -> Optional[TrackingUpdate]:
        """
        Publish one location sample

        Returns:
            TrackingUpdate, or None when the sample had no usable position

        Raises:
            NotFound: unknown ambulance
            PreconditionFailed: the ambulance's case kept changing
            StoreUnavailable: store still failing after retries
        """
        if not sample.has_position:
            self.samples_rejected += 1
            print(f"[TRACKING] Sample for {ambulance_id} has no position, ignored")
            return None
        if not (-90 <= sample.lat <= 90 and -180 <= sample.lng <= 180):
            self.samples_rejected += 1
            print(f"[TRACKING] Sample for {ambulance_id} out of range ({sample.lat}, {sample.lng}), ignored")
            return None

        address, geocoded = await self._resolve_address(sample.lat, sample.lng)
        location = AmbulanceLocation(
            lat=sample.lat,
            lng=sample.lng,
            address=address,
            last_updated=sample.timestamp if sample.timestamp is not None else self.clock(),
            accuracy=sample.accuracy,
        )

        for attempt in range(1, self.max_attempts + 1):
            ambulance = await self.fleet.require(ambulance_id)
            case_id = ambulance.active_case_id
            case = await self.cases.get(case_id) if case_id else None
            destination, severity, distance, eta = self._case_context(case, location)

            try:
                updated = await self.fleet.update_location(
                    ambulance_id,
                    location,
                    expected_case_id=case_id,
                    destination=destination,
                    severity=severity,
                )
                break
            except PreconditionFailed:
                # Case bound or released meanwhile; recompute the context
                if attempt == self.max_attempts:
                    raise

        self.samples_published += 1
        update = TrackingUpdate(
            ambulance=updated,
            case_id=case_id,
            geocoded=geocoded,
            distance_km=distance,
            eta_minutes=eta,
        )
        await self._notify(update)
        return update

    async def _resolve_address(self, lat: float, lng: float) -> Tuple[str, bool]:
        if self.geocoder is None:
            return self.placeholder_address, False
        try:
            return await self.geocoder.reverse(lat, lng), True
        except GeoLookupFailed as e:
            self.geocode_failures += 1
            print(f"[TRACKING] Reverse geocoding failed, using placeholder: {e.message}")
            return self.placeholder_address, False

    def _case_context(
        self,
        case: Optional[EmergencyCase],
        location: AmbulanceLocation
    ) -> Tuple[Optional[Destination], Optional[Severity], Optional[float], Optional[int]]:
        """Destination, severity, distance and ETA implied by the bound case"""
        if case is None or case.status.is_terminal:
            return None, None, None, None

        hospital = case.hospital_info
        if hospital is not None and hospital.location is not None:
            name, target = hospital.name, hospital.location
        else:
            name, target = self.pickup_label, case.location

        distance = distance_between(location, target)
        minutes = eta_minutes(distance, self.speed_kmh)
        destination = Destination(name=name, eta=format_eta(minutes), eta_minutes=minutes)
        return destination, case.severity, distance, minutes

    async def _notify(self, update: TrackingUpdate):
        for callback in list(self._observers):
            try:
                result = callback(update)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                print(f"[TRACKING] Observer error: {e}")

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'published': self.samples_published,
            'rejected': self.samples_rejected,
            'geocodeFailures': self.geocode_failures,
            'observers': len(self._observers),
        }
