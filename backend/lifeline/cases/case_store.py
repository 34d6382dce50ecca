"""
Case Store

Authoritative EmergencyCase records and their transition history.

Every transition is a conditional write guarded on the status (and the
binding fields) the plan was computed from. When the guard fails because
another actor got there first, the case is re-read and the transition is
re-planned against the fresh state, which turns a lost race into the
proper ConflictAlreadyBound / InvalidTransition answer.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union
import time

from ..errors import (
    ConflictAlreadyBound,
    InvalidTransition,
    InvariantViolation,
    NotFound,
    PreconditionFailed,
)
from ..models.case import ACTIVE_STATUSES, CaseStatus, EmergencyCase, Severity, StatusChange
from ..store import CASES, DocumentStore, RetryPolicy, doc_path
from ..store.base import merge_fields
from .state_machine import CaseEvent, TransitionContext, TransitionPlan, plan_transition


ChangesArg = Union[Dict[str, Any], Callable[[EmergencyCase, TransitionPlan], Dict[str, Any]], None]


@dataclass
class CaseTransition:
    """Result of an applied (or idempotently skipped) transition"""
    before: EmergencyCase
    after: EmergencyCase
    plan: TransitionPlan

    @property
    def changed(self) -> bool:
        return not self.plan.noop


class CaseStore:
    """
    Case persistence and lifecycle writes

    Usage:
        cases = CaseStore(store)
        case = await cases.create(EmergencyCase(patient=..., location=...))
        result = await cases.apply_transition(
            case.id, CaseEvent.ACCEPT, TransitionContext(hospital_id="hosp-001")
        )
    """

    def __init__(
        self,
        store: DocumentStore,
        retry: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.time,
        max_attempts: int = 3
    ):
        self.store = store
        self.retry = retry or RetryPolicy()
        self.clock = clock
        self.max_attempts = max_attempts

        # Statistics
        self.transitions_applied = 0
        self.races_lost = 0

    # ==================== Reads ====================

    async def get(self, case_id: str) -> Optional[EmergencyCase]:
        doc = await self.retry.run(lambda: self.store.get(doc_path(CASES, case_id)), f"read case {case_id}")
        return EmergencyCase.from_document(doc) if doc else None

    async def require(self, case_id: str) -> EmergencyCase:
        case = await self.get(case_id)
        if case is None:
            raise NotFound(f"Case not found: {case_id}", details={'caseId': case_id})
        return case

    async def _query(self, field: Optional[str] = None, value: Any = None) -> List[EmergencyCase]:
        docs = await self.retry.run(lambda: self.store.query(CASES, field, value), "query cases")
        return [EmergencyCase.from_document(d) for d in docs]

    # ==================== Writes ====================

    async def create(self, case: EmergencyCase, actor: Optional[str] = None) -> EmergencyCase:
        """Persist a new pending case"""
        if case.status != CaseStatus.PENDING:
            raise InvalidTransition(case.id, case.status.value, "create", reason="new cases start pending")

        now = self.clock()
        case = case.model_copy(update={
            'created_at': now,
            'updated_at': now,
            'history': [StatusChange(to_status=CaseStatus.PENDING, event="create", actor=actor, at=now)],
        })
        self._check_invariants(case)

        doc = await self.retry.run(
            lambda: self.store.set(doc_path(CASES, case.id), case.to_document()),
            f"create case {case.id}"
        )
        print(f"[CASES] Case created: {case.id} ({case.severity.value})")
        return EmergencyCase.from_document(doc)

    async def apply_transition(
        self,
        case_id: str,
        event: CaseEvent,
        context: Optional[TransitionContext] = None,
        changes: ChangesArg = None,
        actor: Optional[str] = None
    ) -> CaseTransition:
        """
        Apply a lifecycle event as a guarded write

        Args:
            case_id: Case to transition
            event: Lifecycle event
            context: Hospital/ambulance ids supplied by the actor
            changes: Extra fields to write, or a callable building them
                     from the freshly read case and plan
            actor: Who requested the transition (for history)

        Raises:
            NotFound, InvalidTransition, ConflictAlreadyBound,
            InvariantViolation, StoreUnavailable
        """
        path = doc_path(CASES, case_id)

        for _ in range(self.max_attempts):
            case = await self.require(case_id)
            plan = plan_transition(case, event, context)

            if plan.noop:
                return CaseTransition(before=case, after=case, plan=plan)

            fields = self._transition_fields(case, plan, changes, actor)
            self._check_invariants(EmergencyCase.from_document(merge_fields(case.to_document(), fields)))

            try:
                doc = await self.retry.run(
                    lambda: self.store.update(path, fields, expected=plan.guard),
                    f"{plan.event.value} case {case_id}"
                )
            except PreconditionFailed:
                # Someone else wrote first; re-plan against their result
                self.races_lost += 1
                continue

            after = EmergencyCase.from_document(doc)
            self.transitions_applied += 1
            print(f"[CASES] {case_id}: {plan.from_status.value} -> {plan.to_status.value} ({plan.event.value})")
            return CaseTransition(before=case, after=after, plan=plan)

        current = await self.require(case_id)
        raise ConflictAlreadyBound(
            f"Case {case_id} kept changing during '{CaseEvent(event).value}'",
            current=current.to_document(),
            details={'caseId': case_id}
        )

    def _transition_fields(
        self,
        case: EmergencyCase,
        plan: TransitionPlan,
        changes: ChangesArg,
        actor: Optional[str]
    ) -> Dict[str, Any]:
        now = self.clock()
        entry = StatusChange(
            from_status=plan.from_status,
            to_status=plan.to_status,
            event=plan.event.value,
            actor=actor,
            at=now,
        )
        fields: Dict[str, Any] = {
            'status': plan.to_status.value,
            'updated_at': now,
            'history': [h.model_dump(mode="json") for h in case.history] + [entry.model_dump(mode="json")],
        }
        if plan.binds_hospital:
            fields['hospital_id'] = plan.binds_hospital
        if plan.binds_ambulance:
            fields['ambulance_id'] = plan.binds_ambulance

        extra = changes(case, plan) if callable(changes) else changes
        for key, value in (extra or {}).items():
            if hasattr(value, 'model_dump'):
                value = value.model_dump(mode="json")
            fields[key] = value
        return fields

    def _check_invariants(self, case: EmergencyCase):
        problems = case.invariant_violations()
        if problems:
            print(f"[CRITICAL] Case {case.id} would violate invariants: {'; '.join(problems)}")
            raise InvariantViolation(
                f"Case {case.id} invariant violation: {'; '.join(problems)}",
                details={'caseId': case.id, 'violations': problems}
            )

    async def mark_bed_reserved(self, case_id: str) -> EmergencyCase:
        """Record that the bound hospital's bed decrement went through"""
        doc = await self.retry.run(
            lambda: self.store.update(doc_path(CASES, case_id), {'bed_reserved': True}),
            f"mark bed reserved {case_id}"
        )
        return EmergencyCase.from_document(doc)

    async def add_decline(self, case_id: str, hospital_id: str) -> EmergencyCase:
        """
        Hide a pending case from one hospital's queue

        Only valid while the case is pending; repeating it is harmless.
        """
        path = doc_path(CASES, case_id)

        for _ in range(self.max_attempts):
            case = await self.require(case_id)
            if hospital_id in case.declined_by:
                return case
            if case.status != CaseStatus.PENDING:
                raise InvalidTransition(
                    case_id, case.status.value, "decline",
                    reason="only pending cases can be declined",
                    current=case.to_document()
                )
            declined = case.declined_by + [hospital_id]
            try:
                doc = await self.retry.run(
                    lambda: self.store.update(
                        path,
                        {'declined_by': declined},
                        expected={'status': CaseStatus.PENDING.value, 'declined_by': case.declined_by}
                    ),
                    f"decline case {case_id}"
                )
                print(f"[CASES] {case_id} declined by {hospital_id}")
                return EmergencyCase.from_document(doc)
            except PreconditionFailed:
                continue

        raise ConflictAlreadyBound(f"Case {case_id} kept changing during decline", details={'caseId': case_id})

    # ==================== Queries ====================

    async def all_cases(self) -> List[EmergencyCase]:
        cases = await self._query()
        return sorted(cases, key=lambda c: c.created_at, reverse=True)

    async def pending_cases(self, exclude_declined_by: Optional[str] = None) -> List[EmergencyCase]:
        """Pending cases, newest first, minus those a hospital declined"""
        cases = await self._query('status', CaseStatus.PENDING)
        if exclude_declined_by:
            cases = [c for c in cases if exclude_declined_by not in c.declined_by]
        return sorted(cases, key=lambda c: c.created_at, reverse=True)

    async def active_for_hospital(self, hospital_id: str) -> List[EmergencyCase]:
        cases = await self._query('hospital_id', hospital_id)
        active = [c for c in cases if c.status in ACTIVE_STATUSES]
        return sorted(active, key=lambda c: c.updated_at, reverse=True)

    async def history_for_hospital(self, hospital_id: str) -> List[EmergencyCase]:
        cases = await self._query('hospital_id', hospital_id)
        closed = [c for c in cases if c.status.is_terminal]
        return sorted(closed, key=lambda c: c.updated_at, reverse=True)

    async def active_for_ambulance(self, ambulance_id: str) -> List[EmergencyCase]:
        """
        Cases an ambulance crew is working on

        Includes cases the crew reported that nobody has dispatched yet.
        """
        bound = await self._query('ambulance_id', ambulance_id)
        reported = await self._query('reported_by.id', ambulance_id)

        seen = set()
        result = []
        for case in bound + reported:
            if case.id in seen:
                continue
            seen.add(case.id)
            if case.status in ACTIVE_STATUSES:
                result.append(case)
            elif case.status == CaseStatus.PENDING and case.ambulance_id is None:
                result.append(case)
        return sorted(result, key=lambda c: c.updated_at, reverse=True)

    async def search(
        self,
        text: Optional[str] = None,
        status: Optional[CaseStatus] = None,
        severity: Optional[Severity] = None,
        since: Optional[float] = None,
        until: Optional[float] = None,
        hospital_id: Optional[str] = None
    ) -> List[EmergencyCase]:
        """
        Filter cases for the patient records view

        Text matches patient name, symptoms, vehicle number and driver
        name, case-insensitively.
        """
        if hospital_id:
            cases = await self._query('hospital_id', hospital_id)
        else:
            cases = await self._query()

        needle = text.strip().lower() if text else ""
        results = []
        for case in cases:
            if status is not None and case.status != CaseStatus(status):
                continue
            if severity is not None and case.severity != Severity(severity):
                continue
            if since is not None and case.created_at < since:
                continue
            if until is not None and case.created_at > until:
                continue
            if needle and needle not in self._search_text(case):
                continue
            results.append(case)

        return sorted(results, key=lambda c: c.created_at, reverse=True)

    @staticmethod
    def _search_text(case: EmergencyCase) -> str:
        parts = [case.patient.name, case.patient.symptoms]
        for snapshot in (case.ambulance_info, case.reported_by):
            if snapshot:
                parts.extend([snapshot.vehicle_number, snapshot.driver_name])
        return " ".join(p for p in parts if p).lower()

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'transitionsApplied': self.transitions_applied,
            'racesLost': self.races_lost,
        }
