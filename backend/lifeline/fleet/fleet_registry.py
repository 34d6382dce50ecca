"""
Fleet Registry & Status Derivation

Addressable table of ambulances keyed by id. All writes that touch
active_case_id are compare-and-set on its current value, which is what
keeps "at most one active case per ambulance" true under concurrent
dispatch attempts.

Reads are served from a local projection kept fresh by the store's
change notifications.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from ..errors import AmbulanceBusy, InvariantViolation, NotFound, PreconditionFailed, ValidationError
from ..geo import DEFAULT_SPEED_KMH, distance_between, eta_minutes, format_eta, format_time_since
from ..models.case import Severity
from ..models.fleet import Ambulance, AmbulanceStatus, Destination, MANUAL_STATUSES
from ..models.geo import AmbulanceLocation
from ..store import AMBULANCES, DocumentStore, RetryPolicy, doc_path
from ..store.base import merge_fields


@dataclass
class NearbyAmbulance:
    """Ambulance within the search radius of a reference point"""
    ambulance: Ambulance
    distance_km: float
    eta_minutes: int

    def to_dict(self, now: Optional[float] = None) -> Dict[str, Any]:
        data = self.ambulance.to_dict()
        data.update({
            'distanceKm': round(self.distance_km, 2),
            'etaMinutes': self.eta_minutes,
            'eta': format_eta(self.eta_minutes),
            'lastSeen': format_time_since(self.ambulance.last_updated, now),
        })
        return data


class FleetRegistry:
    """
    Live view of all ambulances' status and location

    Usage:
        fleet = FleetRegistry(store)
        await fleet.load()
        nearby = fleet.nearby(GeoPoint(lat=12.97, lng=77.59))
    """

    MAX_ATTEMPTS = 5

    def __init__(
        self,
        store: DocumentStore,
        retry: Optional[RetryPolicy] = None,
        nearby_radius_km: float = 5.0,
        speed_kmh: float = DEFAULT_SPEED_KMH
    ):
        self.store = store
        self.retry = retry or RetryPolicy()
        self.nearby_radius_km = nearby_radius_km
        self.speed_kmh = speed_kmh

        # Local projection: ambulance id -> latest known record
        self._projection: Dict[str, Ambulance] = {}
        self._unsubscribe: Optional[Callable[[], None]] = None

    # ==================== Projection ====================

    async def load(self):
        """Fill the projection and follow store changes"""
        docs = await self.retry.run(lambda: self.store.query(AMBULANCES), "load fleet")
        for doc in docs:
            self._remember(Ambulance.from_document(doc))

        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(AMBULANCES, self._on_change)

        print(f"[FLEET] Fleet loaded: {len(self._projection)} ambulances")

    def close(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, path: str, doc: Optional[Dict[str, Any]]):
        ambulance_id = path.split('/', 1)[1]
        if doc is None:
            self._projection.pop(ambulance_id, None)
        else:
            self._remember(Ambulance.from_document(doc))

    def _remember(self, ambulance: Ambulance) -> Ambulance:
        self._projection[ambulance.id] = ambulance
        return ambulance

    # ==================== Queries ====================

    def by_id(self, ambulance_id: str) -> Optional[Ambulance]:
        return self._projection.get(ambulance_id)

    def all(self) -> List[Ambulance]:
        return list(self._projection.values())

    def available(self) -> List[Ambulance]:
        return [a for a in self._projection.values() if a.status == AmbulanceStatus.AVAILABLE]

    def nearby(self, origin: Any, radius_km: Optional[float] = None) -> List[NearbyAmbulance]:
        """
        Ambulances within radius_km of origin

        Sorted by straight-line distance; equal distances put the most
        recently updated location first. Ambulances without a known
        location are skipped.
        """
        radius = self.nearby_radius_km if radius_km is None else radius_km
        if radius < 0:
            raise ValidationError("radius_km must be >= 0")

        results = []
        for ambulance in self._projection.values():
            if ambulance.location is None:
                continue
            distance = distance_between(origin, ambulance.location)
            if distance <= radius:
                results.append(NearbyAmbulance(
                    ambulance=ambulance,
                    distance_km=distance,
                    eta_minutes=eta_minutes(distance, self.speed_kmh),
                ))

        results.sort(key=lambda n: (n.distance_km, -n.ambulance.last_updated))
        return results

    def summary(self, origin: Any = None, radius_km: Optional[float] = None) -> Dict[str, Any]:
        """Fleet counts for the police view"""
        ambulances = self.all()
        counts = {
            'total': len(ambulances),
            'enRoute': sum(1 for a in ambulances if a.status == AmbulanceStatus.EN_ROUTE),
            'busy': sum(1 for a in ambulances if a.status == AmbulanceStatus.BUSY),
            'available': sum(1 for a in ambulances if a.status == AmbulanceStatus.AVAILABLE),
            'offline': sum(1 for a in ambulances if a.status == AmbulanceStatus.OFFLINE),
            'critical': sum(1 for a in ambulances if a.is_engaged and a.severity == Severity.CRITICAL),
        }
        if origin is not None:
            counts['nearby'] = len(self.nearby(origin, radius_km))
            counts['radiusKm'] = self.nearby_radius_km if radius_km is None else radius_km
        return counts

    # ==================== Store access ====================

    async def fetch(self, ambulance_id: str) -> Optional[Ambulance]:
        """Read straight from the store (bypassing the projection)"""
        doc = await self.retry.run(
            lambda: self.store.get(doc_path(AMBULANCES, ambulance_id)),
            f"read ambulance {ambulance_id}"
        )
        if doc is None:
            return None
        return self._remember(Ambulance.from_document(doc))

    async def require(self, ambulance_id: str) -> Ambulance:
        ambulance = await self.fetch(ambulance_id)
        if ambulance is None:
            raise NotFound(f"Ambulance not found: {ambulance_id}", details={'ambulanceId': ambulance_id})
        return ambulance

    async def _write(
        self,
        ambulance: Ambulance,
        fields: Dict[str, Any],
        expected: Dict[str, Any],
        label: str
    ) -> Ambulance:
        candidate = Ambulance.from_document(merge_fields(ambulance.to_document(), fields))
        problems = candidate.invariant_violations()
        if problems:
            print(f"[CRITICAL] {label} would violate invariants: {'; '.join(problems)}")
            raise InvariantViolation(
                f"Ambulance {ambulance.id} invariant violation: {'; '.join(problems)}",
                current=ambulance.to_document()
            )

        doc = await self.retry.run(
            lambda: self.store.update(doc_path(AMBULANCES, ambulance.id), fields, expected=expected),
            label
        )
        return self._remember(Ambulance.from_document(doc))

    # ==================== Commands ====================

    async def register(self, ambulance: Ambulance) -> Ambulance:
        """
        Add an ambulance to the fleet

        Re-registering keeps the dynamic fields (status, location, case)
        of an existing entry and only refreshes the descriptive ones.
        """
        existing = await self.fetch(ambulance.id)
        if existing is not None:
            ambulance = ambulance.model_copy(update={
                'status': existing.status,
                'location': existing.location,
                'active_case_id': existing.active_case_id,
                'destination': existing.destination,
                'severity': existing.severity,
            })

        doc = await self.retry.run(
            lambda: self.store.set(doc_path(AMBULANCES, ambulance.id), ambulance.to_document()),
            f"register ambulance {ambulance.id}"
        )
        print(f"[FLEET] Ambulance registered: {ambulance.id} ({ambulance.vehicle_number})")
        return self._remember(Ambulance.from_document(doc))

    async def bind_case(
        self,
        ambulance_id: str,
        case_id: str,
        destination: Optional[Destination] = None,
        severity: Optional[Severity] = None
    ) -> Ambulance:
        """
        Bind an ambulance to a case and mark it en-route

        Compare-and-set on active_case_id being empty. Binding the case
        the ambulance already holds is a no-op.

        Raises:
            AmbulanceBusy: ambulance holds a different active case
        """
        for _ in range(self.MAX_ATTEMPTS):
            ambulance = await self.require(ambulance_id)

            if ambulance.active_case_id == case_id:
                return ambulance
            if ambulance.active_case_id is not None:
                raise AmbulanceBusy(
                    f"Ambulance {ambulance_id} is already on case {ambulance.active_case_id}",
                    current=ambulance.to_document(),
                    details={'ambulanceId': ambulance_id, 'activeCaseId': ambulance.active_case_id}
                )

            fields = {
                'active_case_id': case_id,
                'status': AmbulanceStatus.EN_ROUTE.value,
                'destination': destination.model_dump() if destination else None,
                'severity': severity.value if severity else None,
            }
            try:
                bound = await self._write(ambulance, fields, {'active_case_id': None}, f"bind {ambulance_id}")
            except PreconditionFailed:
                continue

            print(f"[FLEET] {ambulance_id} bound to {case_id}")
            return bound

        current = await self.require(ambulance_id)
        raise AmbulanceBusy(f"Ambulance {ambulance_id} kept changing during bind", current=current.to_document())

    async def mark_at_hospital(self, ambulance_id: str, case_id: str) -> Optional[Ambulance]:
        """Ambulance reached the hospital with the patient (status busy)"""
        ambulance = await self.require(ambulance_id)
        if ambulance.active_case_id != case_id:
            print(f"[WARN] {ambulance_id} is not bound to {case_id}; arrival not recorded on fleet")
            return None

        try:
            return await self._write(
                ambulance,
                {'status': AmbulanceStatus.BUSY.value},
                {'active_case_id': case_id},
                f"arrive {ambulance_id}"
            )
        except PreconditionFailed:
            print(f"[WARN] {ambulance_id} released from {case_id} before arrival was recorded")
            return None

    async def release(self, ambulance_id: str, case_id: str) -> Ambulance:
        """
        Free an ambulance after its case completed or was canceled

        Only releases if the ambulance is still bound to case_id, so a
        late or repeated release never frees it from a newer case.
        """
        for _ in range(self.MAX_ATTEMPTS):
            ambulance = await self.require(ambulance_id)
            if ambulance.active_case_id != case_id:
                return ambulance

            fields = {
                'active_case_id': None,
                'status': AmbulanceStatus.AVAILABLE.value,
                'destination': None,
                'severity': None,
            }
            try:
                released = await self._write(ambulance, fields, {'active_case_id': case_id}, f"release {ambulance_id}")
            except PreconditionFailed:
                continue

            print(f"[FLEET] {ambulance_id} released from {case_id}")
            return released

        return await self.require(ambulance_id)

    async def set_status(self, ambulance_id: str, status: AmbulanceStatus) -> Ambulance:
        """
        Manual status change (available / offline)

        Raises:
            ValidationError: status is not manually settable
            AmbulanceBusy: ambulance is on an active case
        """
        try:
            status = AmbulanceStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown ambulance status: {status}")
        if status not in MANUAL_STATUSES:
            raise ValidationError(
                f"Status '{status.value}' can only be set by case transitions",
                details={'allowed': [s.value for s in MANUAL_STATUSES]}
            )

        ambulance = await self.require(ambulance_id)
        if ambulance.active_case_id is not None:
            raise AmbulanceBusy(
                f"Ambulance {ambulance_id} is on case {ambulance.active_case_id}",
                current=ambulance.to_document(),
                details={'ambulanceId': ambulance_id, 'activeCaseId': ambulance.active_case_id}
            )

        try:
            updated = await self._write(
                ambulance,
                {'status': status.value},
                {'active_case_id': None},
                f"set status {ambulance_id}"
            )
        except PreconditionFailed as e:
            raise AmbulanceBusy(f"Ambulance {ambulance_id} was dispatched meanwhile", current=e.current)

        print(f"[FLEET] {ambulance_id} status -> {status.value}")
        return updated

    async def update_location(
        self,
        ambulance_id: str,
        location: AmbulanceLocation,
        expected_case_id: Optional[str],
        destination: Optional[Destination] = None,
        severity: Optional[Severity] = None
    ) -> Ambulance:
        """
        Publish a location sample with the case context it was computed for

        Never changes status. The write is guarded on active_case_id so
        context derived from a case that was released meanwhile is not
        written back.

        Raises:
            PreconditionFailed: the ambulance's case changed since it was read
        """
        ambulance = await self.require(ambulance_id)
        fields = {
            'location': location.model_dump(mode="json"),
            'destination': destination.model_dump() if destination else None,
            'severity': severity.value if severity else None,
        }
        return await self._write(
            ambulance,
            fields,
            {'active_case_id': expected_case_id},
            f"locate {ambulance_id}"
        )
