"""
Dispatch Coordinator

Command surface of the dispatch core. Each command is awaited to an
explicit result or a DispatchError; nothing is fire-and-forget.

Two-document rules:
- The case write is authoritative.
- Accept: the hospital bed decrement follows the case write as a
  best-effort, idempotent step (re-driven by reconcile()).
- Dispatch: the ambulance is bound first (compare-and-set on its active
  case); if the case write then loses, the binding is released again.
- Complete/cancel: the ambulance is released right after the case write;
  a failed release is re-driven by reconcile().
"""

from typing import Any, Callable, Dict, List, Optional, Union
import time

from pydantic import ValidationError as PydanticValidationError

from ..cases import CaseEvent, CaseStore, TransitionContext, plan_transition
from ..errors import (
    DispatchError,
    GeoLookupFailed,
    NotFound,
    PreconditionFailed,
    StoreUnavailable,
    ValidationError,
)
from ..fleet import FleetRegistry, NearbyAmbulance
from ..geo import DEFAULT_SPEED_KMH, distance_between, eta_minutes, format_eta
from ..hospitals import HospitalDirectory
from ..matching import (
    CaseCandidate,
    HospitalCandidate,
    RouteScorer,
    rank_cases_for_ambulance,
    rank_hospitals,
)
from ..models import (
    Account,
    Ambulance,
    AmbulanceSnapshot,
    AmbulanceStatus,
    CaseStatus,
    Destination,
    EmergencyCase,
    HospitalSnapshot,
    Location,
    PatientInfo,
    RankedRoute,
)
from ..store import ACCOUNTS, doc_path
from ..tracking import LocationFeed, LocationSample, TrackingRegistry, TrackingSession, TrackingUpdate


def _validation_error(message: str, error: PydanticValidationError) -> ValidationError:
    """Flatten pydantic errors into a JSON-safe ValidationError"""
    errors = [
        {'field': '.'.join(str(p) for p in err['loc']), 'message': err['msg']}
        for err in error.errors()
    ]
    return ValidationError(message, details={'errors': errors})


class DispatchCoordinator:
    """
    Coordinate cases between ambulance crews, hospitals and police

    Usage:
        coordinator = DispatchCoordinator(cases, fleet, hospitals)
        case = await coordinator.create_case(patient, location, reported_by="amb-001")
        case = await coordinator.accept_case(case.id, "hosp-001")
        case = await coordinator.dispatch_case(case.id, "amb-001")
    """

    def __init__(
        self,
        cases: CaseStore,
        fleet: FleetRegistry,
        hospitals: HospitalDirectory,
        route_scorer: Optional[RouteScorer] = None,
        geocoder=None,
        feed: Optional[LocationFeed] = None,
        ws_emitter=None,
        speed_kmh: float = DEFAULT_SPEED_KMH,
        pickup_label: str = "Patient pickup",
        tracking_interval: float = 10,
        tracking_sleep=None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the coordinator

        Args:
            cases: Case store
            fleet: Fleet registry
            hospitals: Hospital directory
            route_scorer: Route scorer (straight-line only when omitted)
            geocoder: Geocoding provider for case addresses
            feed: Live tracking feed (built from the other parts when omitted)
            ws_emitter: WebSocket emitter for real-time updates
            speed_kmh: Assumed speed for straight-line ETAs
            pickup_label: Destination label before a hospital is bound
            tracking_interval: Seconds between tracked location samples
        """
        self.cases = cases
        self.fleet = fleet
        self.hospitals = hospitals
        self.route_scorer = route_scorer or RouteScorer(speed_kmh=speed_kmh)
        self.geocoder = geocoder
        self.speed_kmh = speed_kmh
        self.pickup_label = pickup_label
        self.clock = clock

        self.feed = feed or LocationFeed(
            fleet, cases,
            geocoder=geocoder,
            speed_kmh=speed_kmh,
            pickup_label=pickup_label,
            clock=clock
        )
        self.tracking = TrackingRegistry(self.feed, interval_seconds=tracking_interval, sleep=tracking_sleep)

        self.ws_emitter = None
        if ws_emitter is not None:
            self.set_ws_emitter(ws_emitter)

        # Statistics
        self.cases_created = 0
        self.deferred_side_effects = 0

    def set_ws_emitter(self, ws_emitter):
        """Attach the WebSocket emitter (also observes the tracking feed)"""
        if self.ws_emitter is not None:
            self.feed.remove_observer(self.ws_emitter.emit_tracking_update)
        self.ws_emitter = ws_emitter
        self.feed.add_observer(ws_emitter.emit_tracking_update)

    # ============================================
    # Case lifecycle
    # ============================================

    async def create_case(
        self,
        patient: Union[PatientInfo, Dict[str, Any]],
        location: Union[Location, Dict[str, Any]],
        reported_by: Optional[str] = None
    ) -> EmergencyCase:
        """
        Create a pending case

        Args:
            patient: Patient data (name, age, gender, symptoms, severity)
            location: Where the patient is (address optional)
            reported_by: Ambulance id of the reporting crew

        Raises:
            ValidationError: missing or malformed fields (nothing is written)
            NotFound: reporting ambulance unknown
        """
        try:
            if not isinstance(patient, PatientInfo):
                patient = PatientInfo.model_validate(patient or {})
            if not isinstance(location, Location):
                location = Location.model_validate(location or {})
        except PydanticValidationError as e:
            raise _validation_error("Invalid case data", e)

        reporter = None
        if reported_by:
            ambulance = await self.fleet.require(reported_by)
            reporter = AmbulanceSnapshot(
                id=ambulance.id,
                driver_name=ambulance.driver_name,
                vehicle_number=ambulance.vehicle_number,
            )

        if not location.address and self.geocoder is not None:
            try:
                address = await self.geocoder.reverse(location.lat, location.lng)
                location = location.model_copy(update={'address': address})
            except GeoLookupFailed as e:
                print(f"[DISPATCH] Case address lookup failed: {e.message}")

        case = await self.cases.create(
            EmergencyCase(patient=patient, location=location, reported_by=reporter),
            actor=reported_by
        )
        self.cases_created += 1

        if self.ws_emitter:
            await self.ws_emitter.emit_case_created(case)
        return case

    async def accept_case(self, case_id: str, hospital_id: str) -> EmergencyCase:
        """
        Hospital commits to a case

        Exactly one hospital wins a concurrent race; the others get
        ConflictAlreadyBound carrying the winning state. Only the winner
        takes a bed.

        Raises:
            NotFound, ValidationError (no beds), InvalidTransition,
            ConflictAlreadyBound, StoreUnavailable
        """
        hospital = await self.hospitals.require(hospital_id)
        if not hospital.has_capacity:
            raise ValidationError(
                f"Hospital {hospital_id} has no available beds",
                details={'hospitalId': hospital_id, 'availableBeds': hospital.available_beds}
            )

        def snapshot(case: EmergencyCase, plan) -> Dict[str, Any]:
            distance = distance_between(case.location, hospital.location) if hospital.location else None
            return {
                'hospital_info': HospitalSnapshot(
                    id=hospital.id,
                    name=hospital.name,
                    address=hospital.address,
                    contact=hospital.contact,
                    distance_km=round(distance, 2) if distance is not None else None,
                    beds_at_acceptance=hospital.available_beds,
                    location=hospital.location,
                )
            }

        result = await self.cases.apply_transition(
            case_id,
            CaseEvent.ACCEPT,
            TransitionContext(hospital_id=hospital_id),
            changes=snapshot,
            actor=hospital_id
        )
        case = await self._reserve_bed(result.after)

        print(f"[DISPATCH] {case_id} accepted by {hospital.name}")
        if self.ws_emitter:
            await self.ws_emitter.emit_case_transition(result.before, case, CaseEvent.ACCEPT.value)
        return case

    async def dispatch_case(self, case_id: str, ambulance_id: str) -> EmergencyCase:
        """
        Bind an ambulance to a case and move it en-route

        Works from pending (self-dispatch) and accepted. Repeating the
        dispatch with the same ambulance is a no-op.

        Raises:
            NotFound, InvalidTransition, ConflictAlreadyBound,
            AmbulanceBusy, StoreUnavailable
        """
        ambulance = await self.fleet.require(ambulance_id)
        case = await self.cases.require(case_id)
        context = TransitionContext(ambulance_id=ambulance_id)

        # Reject early, before touching the ambulance record
        if plan_transition(case, CaseEvent.DISPATCH, context).noop:
            return case

        destination = self._destination_for(case, ambulance)
        bound = await self.fleet.bind_case(ambulance_id, case_id, destination, case.severity)

        snapshot = AmbulanceSnapshot(
            id=ambulance.id,
            driver_name=ambulance.driver_name,
            vehicle_number=ambulance.vehicle_number,
            eta_minutes=destination.eta_minutes,
            eta_label=destination.eta,
        )
        try:
            result = await self.cases.apply_transition(
                case_id,
                CaseEvent.DISPATCH,
                context,
                changes={'ambulance_info': snapshot},
                actor=ambulance_id
            )
        except DispatchError:
            # Case write lost; undo the ambulance binding
            await self._release(ambulance_id, case_id)
            raise

        if self.ws_emitter:
            await self.ws_emitter.emit_ambulance_status(bound)
            if result.changed:
                await self.ws_emitter.emit_case_transition(result.before, result.after, CaseEvent.DISPATCH.value)

        print(f"[DISPATCH] {case_id} dispatched to {ambulance_id} (ETA {destination.eta})")
        return result.after

    async def mark_en_route(self, case_id: str, ambulance_id: Optional[str] = None) -> EmergencyCase:
        """
        Crew confirms pickup and starts transit

        Defaults to the bound ambulance, then to the reporting crew.
        """
        case = await self.cases.require(case_id)
        ambulance_id = ambulance_id or case.ambulance_id or (case.reported_by.id if case.reported_by else None)
        if not ambulance_id:
            raise ValidationError(f"No ambulance given for case {case_id}", details={'caseId': case_id})
        return await self.dispatch_case(case_id, ambulance_id)

    async def mark_arrived(self, case_id: str, ambulance_id: Optional[str] = None) -> EmergencyCase:
        """Ambulance reached the hospital"""
        result = await self.cases.apply_transition(
            case_id,
            CaseEvent.ARRIVE,
            TransitionContext(ambulance_id=ambulance_id),
            actor=ambulance_id
        )
        case = result.after

        try:
            ambulance = await self.fleet.mark_at_hospital(case.ambulance_id, case_id)
        except (StoreUnavailable, NotFound) as e:
            self.deferred_side_effects += 1
            print(f"[WARN] Arrival of {case.ambulance_id} not recorded on fleet: {e.message}")
            ambulance = None

        if self.ws_emitter:
            if ambulance is not None:
                await self.ws_emitter.emit_ambulance_status(ambulance)
            await self.ws_emitter.emit_case_transition(result.before, case, CaseEvent.ARRIVE.value)
        return case

    async def complete_case(self, case_id: str, actor: Optional[str] = None) -> EmergencyCase:
        """Finalize an arrived case and free its ambulance"""
        result = await self.cases.apply_transition(case_id, CaseEvent.COMPLETE, actor=actor)
        await self._release(result.plan.releases_ambulance, case_id)

        print(f"[DISPATCH] {case_id} completed")
        if self.ws_emitter:
            await self.ws_emitter.emit_case_transition(result.before, result.after, CaseEvent.COMPLETE.value)
        return result.after

    async def cancel_case(
        self,
        case_id: str,
        reason: Optional[str] = None,
        actor: Optional[str] = None
    ) -> EmergencyCase:
        """
        Abort a case from pending, accepted or en-route

        The ambulance is released; the hospital bed is not given back.
        """
        result = await self.cases.apply_transition(
            case_id,
            CaseEvent.CANCEL,
            changes={'cancel_reason': reason},
            actor=actor
        )
        await self._release(result.plan.releases_ambulance, case_id)

        print(f"[DISPATCH] {case_id} canceled{f': {reason}' if reason else ''}")
        if self.ws_emitter:
            await self.ws_emitter.emit_case_transition(result.before, result.after, CaseEvent.CANCEL.value)
        return result.after

    async def decline_case(self, case_id: str, hospital_id: str) -> EmergencyCase:
        """Hide a pending case from one hospital's queue"""
        await self.hospitals.require(hospital_id)
        case = await self.cases.add_decline(case_id, hospital_id)
        if self.ws_emitter:
            await self.ws_emitter.emit_case_updated(case, "decline")
        return case

    # ============================================
    # Side effects
    # ============================================

    def _destination_for(self, case: EmergencyCase, ambulance: Ambulance) -> Destination:
        """Destination and straight-line ETA for a newly dispatched ambulance"""
        origin = ambulance.location or case.location
        hospital = case.hospital_info

        if hospital is not None and hospital.location is not None:
            name, target = hospital.name, hospital.location
        else:
            name, target = self.pickup_label, case.location

        minutes = eta_minutes(distance_between(origin, target), self.speed_kmh)
        return Destination(name=name, eta=format_eta(minutes), eta_minutes=minutes)

    async def _reserve_bed(self, case: EmergencyCase) -> EmergencyCase:
        """Best-effort bed decrement; reconcile() re-drives failures"""
        try:
            await self.hospitals.reserve_bed(case.hospital_id, case.id)
            return await self.cases.mark_bed_reserved(case.id)
        except (StoreUnavailable, PreconditionFailed, NotFound) as e:
            self.deferred_side_effects += 1
            print(f"[WARN] Bed reservation for {case.id} deferred: {e.message}")
            return case

    async def _release(self, ambulance_id: Optional[str], case_id: str):
        """Best-effort ambulance release; reconcile() re-drives failures"""
        if not ambulance_id:
            return
        try:
            ambulance = await self.fleet.release(ambulance_id, case_id)
        except (StoreUnavailable, NotFound) as e:
            self.deferred_side_effects += 1
            print(f"[WARN] Release of {ambulance_id} from {case_id} deferred: {e.message}")
            return

        if self.ws_emitter:
            await self.ws_emitter.emit_ambulance_status(ambulance)

    async def reconcile(self) -> Dict[str, int]:
        """
        Re-drive side effects left behind by partial failures

        - accepted cases whose bed decrement never landed
        - ambulances still bound to a closed, missing or reassigned case
        """
        beds = 0
        released = 0
        accepted_statuses = (CaseStatus.ACCEPTED, CaseStatus.EN_ROUTE, CaseStatus.ARRIVED, CaseStatus.COMPLETED)

        cases = {c.id: c for c in await self.cases.all_cases()}
        for case in cases.values():
            if case.hospital_id and not case.bed_reserved and case.status in accepted_statuses:
                updated = await self._reserve_bed(case)
                if updated.bed_reserved:
                    beds += 1

        for ambulance in self.fleet.all():
            case_id = ambulance.active_case_id
            if not case_id:
                continue
            case = cases.get(case_id)
            stale = (
                case is None
                or case.status.is_terminal
                or (case.ambulance_id is not None and case.ambulance_id != ambulance.id)
            )
            if stale:
                await self._release(ambulance.id, case_id)
                released += 1

        if beds or released:
            print(f"[DISPATCH] Reconciled: {beds} bed reservations, {released} ambulance releases")
        return {'bedsReserved': beds, 'ambulancesReleased': released}

    # ============================================
    # Fleet and tracking
    # ============================================

    async def update_ambulance_location(
        self,
        ambulance_id: str,
        lat: Optional[float],
        lng: Optional[float],
        accuracy: Optional[float] = None,
        timestamp: Optional[float] = None
    ) -> Optional[TrackingUpdate]:
        """Publish a location sample (None when it had no position)"""
        sample = LocationSample(lat=lat, lng=lng, accuracy=accuracy, timestamp=timestamp)
        return await self.feed.ingest(ambulance_id, sample)

    async def nearby_ambulances(self, origin: Any, radius_km: Optional[float] = None) -> List[NearbyAmbulance]:
        return self.fleet.nearby(origin, radius_km)

    async def set_ambulance_status(self, ambulance_id: str, status: AmbulanceStatus) -> Ambulance:
        """Manual available/offline toggle by the crew"""
        ambulance = await self.fleet.set_status(ambulance_id, status)
        if self.ws_emitter:
            await self.ws_emitter.emit_ambulance_status(ambulance)
        return ambulance

    def fleet_summary(self, origin: Any = None, radius_km: Optional[float] = None) -> Dict[str, Any]:
        return self.fleet.summary(origin, radius_km)

    async def start_tracking(self, ambulance_id: str, source) -> TrackingSession:
        """Start periodic location publishing for an ambulance device"""
        await self.fleet.require(ambulance_id)
        return await self.tracking.start(ambulance_id, source)

    async def stop_tracking(self, ambulance_id: str):
        await self.tracking.stop(ambulance_id)

    async def shutdown(self):
        """Stop all tracking sessions and detach from store notifications"""
        await self.tracking.stop_all()
        self.fleet.close()

    # ============================================
    # Matching
    # ============================================

    async def rank_hospitals(self, location: Any, only_available: bool = True) -> List[HospitalCandidate]:
        hospitals = await self.hospitals.all()
        return rank_hospitals(location, hospitals, only_available=only_available, speed_kmh=self.speed_kmh)

    async def rank_routes(
        self,
        origin: Any,
        destination: Any,
        departure_time: Optional[float] = None
    ) -> List[RankedRoute]:
        return await self.route_scorer.rank_routes(origin, destination, departure_time)

    async def pending_cases_for_hospital(self, hospital_id: str) -> List[EmergencyCase]:
        """Pending queue for one hospital (minus the ones it declined)"""
        await self.hospitals.require(hospital_id)
        return await self.cases.pending_cases(exclude_declined_by=hospital_id)

    async def pending_cases_for_ambulance(self, ambulance_id: str) -> List[CaseCandidate]:
        """Pending cases sorted by distance from this ambulance"""
        ambulance = await self.fleet.require(ambulance_id)
        pending = await self.cases.pending_cases()
        return rank_cases_for_ambulance(ambulance.location, pending, speed_kmh=self.speed_kmh)

    # ============================================
    # Accounts
    # ============================================

    async def register_account(self, account: Union[Account, Dict[str, Any]]) -> Account:
        """
        Store an account and project approved ones into the registries

        Ambulance accounts become fleet entries, hospital accounts become
        hospital entries; police accounts have no registry entry.
        """
        try:
            if not isinstance(account, Account):
                account = Account.model_validate(account)
        except PydanticValidationError as e:
            raise _validation_error("Invalid account data", e)

        store = self.cases.store
        await self.cases.retry.run(
            lambda: store.set(doc_path(ACCOUNTS, account.id), account.model_dump(mode="json")),
            f"register account {account.id}"
        )

        if account.is_approved:
            if account.role == 'ambulance':
                await self.fleet.register(account.to_ambulance())
            elif account.role == 'hospital':
                await self.hospitals.register(account.to_hospital())

        print(f"[DISPATCH] Account registered: {account.id} ({account.role}, {account.status.value})")
        return account

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'casesCreated': self.cases_created,
            'deferredSideEffects': self.deferred_side_effects,
            'cases': self.cases.get_statistics(),
            'fleet': self.fleet.summary(),
            'tracking': self.feed.get_statistics(),
            'routing': {
                'providerRoutes': self.route_scorer.provider_routes,
                'fallbacks': self.route_scorer.fallbacks,
            },
        }


# Global coordinator instance
_coordinator: Optional[DispatchCoordinator] = None


def get_coordinator() -> Optional[DispatchCoordinator]:
    """Get global dispatch coordinator instance"""
    return _coordinator


def set_coordinator(coordinator: Optional[DispatchCoordinator]):
    """Set global dispatch coordinator instance"""
    global _coordinator
    _coordinator = coordinator


async def init_coordinator(
    store,
    cfg,
    geocoder=None,
    routing_provider=None,
    ws_emitter=None,
    sleep=None
) -> DispatchCoordinator:
    """
    Build and register the global coordinator from configuration

    Args:
        store: Document store
        cfg: ConfigManager
        geocoder: Geocoding provider (optional)
        routing_provider: Routing provider (optional)
        ws_emitter: WebSocket emitter (optional)
        sleep: Backoff sleep for store retries (tests)
    """
    from ..store import RetryPolicy

    retry = RetryPolicy.from_config(cfg, sleep=sleep)
    speed = cfg.get('dispatch.assumedSpeedKmh', DEFAULT_SPEED_KMH)
    pickup_label = cfg.get('dispatch.pickupLabel', "Patient pickup")

    cases = CaseStore(store, retry, max_attempts=cfg.get('dispatch.transitionAttempts', 3))
    fleet = FleetRegistry(
        store, retry,
        nearby_radius_km=cfg.get('dispatch.nearbyRadiusKm', 5.0),
        speed_kmh=speed
    )
    hospitals = HospitalDirectory(store, retry)
    feed = LocationFeed(
        fleet, cases,
        geocoder=geocoder,
        speed_kmh=speed,
        placeholder_address=cfg.get('dispatch.placeholderAddress', "Location Update"),
        pickup_label=pickup_label
    )

    await fleet.load()

    coordinator = DispatchCoordinator(
        cases, fleet, hospitals,
        route_scorer=RouteScorer(routing_provider, speed_kmh=speed),
        geocoder=geocoder,
        feed=feed,
        ws_emitter=ws_emitter,
        speed_kmh=speed,
        pickup_label=pickup_label,
        tracking_interval=cfg.get('tracking.intervalSeconds', 10)
    )
    set_coordinator(coordinator)
    print("[OK] Dispatch coordinator initialized")
    return coordinator
