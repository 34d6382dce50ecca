"""
Case State Machine

Transition table and guards for the emergency case lifecycle:

    pending -> accepted -> en-route -> arrived -> completed
    pending -> en-route                 (ambulance self-dispatch)
    pending | accepted | en-route -> canceled

plan_transition() is a pure function of (case, event, context). It either
returns a TransitionPlan describing the new status, the fields the
conditional write must be guarded on and the side effects to run, or
raises. It never touches the store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..errors import ConflictAlreadyBound, InvalidTransition, InvariantViolation
from ..models.case import CaseStatus, EmergencyCase


class CaseEvent(str, Enum):
    """Events that drive a case through its lifecycle"""
    ACCEPT = "accept"
    DISPATCH = "dispatch"
    ARRIVE = "arrive"
    COMPLETE = "complete"
    CANCEL = "cancel"


# (status, event) -> next status
TRANSITIONS: Dict[Tuple[CaseStatus, CaseEvent], CaseStatus] = {
    (CaseStatus.PENDING, CaseEvent.ACCEPT): CaseStatus.ACCEPTED,
    (CaseStatus.PENDING, CaseEvent.DISPATCH): CaseStatus.EN_ROUTE,
    (CaseStatus.ACCEPTED, CaseEvent.DISPATCH): CaseStatus.EN_ROUTE,
    # Late hospital binding for a self-dispatched case; status unchanged
    (CaseStatus.EN_ROUTE, CaseEvent.ACCEPT): CaseStatus.EN_ROUTE,
    (CaseStatus.EN_ROUTE, CaseEvent.ARRIVE): CaseStatus.ARRIVED,
    (CaseStatus.ARRIVED, CaseEvent.COMPLETE): CaseStatus.COMPLETED,
    (CaseStatus.PENDING, CaseEvent.CANCEL): CaseStatus.CANCELED,
    (CaseStatus.ACCEPTED, CaseEvent.CANCEL): CaseStatus.CANCELED,
    (CaseStatus.EN_ROUTE, CaseEvent.CANCEL): CaseStatus.CANCELED,
}


@dataclass
class TransitionContext:
    """Actor-supplied guard context for a transition"""
    hospital_id: Optional[str] = None
    ambulance_id: Optional[str] = None


@dataclass
class TransitionPlan:
    """
    Outcome of planning a transition

    guard holds the field values the case write must be conditioned on.
    A plan with noop=True means the requested state already holds
    (idempotent repeat) and nothing should be written.
    """
    case_id: str
    event: CaseEvent
    from_status: CaseStatus
    to_status: CaseStatus
    guard: Dict[str, Any] = field(default_factory=dict)
    binds_hospital: Optional[str] = None
    binds_ambulance: Optional[str] = None
    releases_ambulance: Optional[str] = None
    noop: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.to_status.is_terminal


def allowed_events(status: CaseStatus) -> Tuple[CaseEvent, ...]:
    """Events that are valid from a status"""
    return tuple(event for (s, event) in TRANSITIONS if s == status)


def plan_transition(
    case: EmergencyCase,
    event: CaseEvent,
    context: Optional[TransitionContext] = None
) -> TransitionPlan:
    """
    Plan a case transition

    Args:
        case: Current case state
        event: Requested event
        context: Hospital/ambulance ids supplied by the actor

    Returns:
        TransitionPlan for the store write

    Raises:
        InvalidTransition: (status, event) not permitted or guard input missing
        ConflictAlreadyBound: another hospital/ambulance is already bound
        InvariantViolation: the transition table has no handler for a permitted pair
    """
    context = context or TransitionContext()
    event = CaseEvent(event)
    status = case.status
    current = case.to_document()

    def reject(reason: Optional[str] = None):
        return InvalidTransition(case.id, status.value, event.value, reason=reason, current=current)

    if status.is_terminal:
        raise reject("case is closed")

    # Dispatch of a case already in transit: a retry, or a lost race
    if event == CaseEvent.DISPATCH and status == CaseStatus.EN_ROUTE and context.ambulance_id:
        if case.ambulance_id == context.ambulance_id:
            return TransitionPlan(
                case_id=case.id,
                event=event,
                from_status=status,
                to_status=status,
                noop=True,
            )
        raise ConflictAlreadyBound(
            f"Case {case.id} already dispatched to ambulance {case.ambulance_id}",
            current=current,
            details={'caseId': case.id, 'ambulanceId': case.ambulance_id}
        )

    to_status = TRANSITIONS.get((status, event))
    if to_status is None:
        raise reject()

    plan = TransitionPlan(
        case_id=case.id,
        event=event,
        from_status=status,
        to_status=to_status,
        guard={'status': status.value},
    )

    if event == CaseEvent.ACCEPT:
        if not context.hospital_id:
            raise reject("hospital_id is required")
        if case.hospital_id is not None:
            raise ConflictAlreadyBound(
                f"Case {case.id} already accepted by hospital {case.hospital_id}",
                current=current,
                details={'caseId': case.id, 'hospitalId': case.hospital_id}
            )
        plan.guard['hospital_id'] = None
        plan.binds_hospital = context.hospital_id
        return plan

    if event == CaseEvent.DISPATCH:
        if not context.ambulance_id:
            raise reject("ambulance_id is required")
        if status == CaseStatus.ACCEPTED and case.hospital_id is None:
            raise InvariantViolation(f"Accepted case {case.id} has no hospital_id", current=current)

        if case.ambulance_id is not None:
            if case.ambulance_id == context.ambulance_id:
                plan.noop = True
                return plan
            raise ConflictAlreadyBound(
                f"Case {case.id} already dispatched to ambulance {case.ambulance_id}",
                current=current,
                details={'caseId': case.id, 'ambulanceId': case.ambulance_id}
            )
        plan.guard['ambulance_id'] = None
        plan.binds_ambulance = context.ambulance_id
        return plan

    if event == CaseEvent.ARRIVE:
        if case.ambulance_id is None:
            raise reject("no ambulance bound")
        if case.hospital_id is None:
            raise reject("no hospital bound")
        if context.ambulance_id and context.ambulance_id != case.ambulance_id:
            raise reject(f"case is assigned to ambulance {case.ambulance_id}")
        plan.guard['ambulance_id'] = case.ambulance_id
        plan.guard['hospital_id'] = case.hospital_id
        return plan

    if event == CaseEvent.COMPLETE:
        plan.guard['ambulance_id'] = case.ambulance_id
        plan.releases_ambulance = case.ambulance_id
        return plan

    if event == CaseEvent.CANCEL:
        plan.guard['ambulance_id'] = case.ambulance_id
        plan.releases_ambulance = case.ambulance_id
        return plan

    raise InvariantViolation(
        f"No handler for permitted transition ({status.value}, {event.value})",
        current=current
    )
