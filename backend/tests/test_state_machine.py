"""
Case State Machine Tests

plan_transition() is pure, so every legal and illegal pair can be
checked without a store.
"""

import pytest

from lifeline.cases import (
    CaseEvent,
    TRANSITIONS,
    TransitionContext,
    allowed_events,
    plan_transition,
)
from lifeline.errors import ConflictAlreadyBound, InvalidTransition
from lifeline.models import (
    AmbulanceSnapshot,
    CaseStatus,
    EmergencyCase,
    HospitalSnapshot,
    Location,
    PatientInfo,
)


def make_case(patient_data, status=CaseStatus.PENDING, hospital_id=None, ambulance_id=None):
    return EmergencyCase(
        patient=PatientInfo(**patient_data),
        location=Location(lat=12.9716, lng=77.5946),
        status=status,
        hospital_id=hospital_id,
        hospital_info=HospitalSnapshot(id=hospital_id, name="H") if hospital_id else None,
        ambulance_id=ambulance_id,
        ambulance_info=AmbulanceSnapshot(id=ambulance_id) if ambulance_id else None,
    )


HOSPITAL = TransitionContext(hospital_id="hosp-001")
AMBULANCE = TransitionContext(ambulance_id="amb-001")


# ============================================
# Transition Table Tests
# ============================================

class TestTransitionTable:
    """Test the permitted (status, event) pairs"""

    def test_terminal_states_have_no_events(self):
        assert allowed_events(CaseStatus.COMPLETED) == ()
        assert allowed_events(CaseStatus.CANCELED) == ()

    def test_pending_events(self):
        assert set(allowed_events(CaseStatus.PENDING)) == {
            CaseEvent.ACCEPT, CaseEvent.DISPATCH, CaseEvent.CANCEL
        }

    def test_arrived_can_only_complete(self):
        assert allowed_events(CaseStatus.ARRIVED) == (CaseEvent.COMPLETE,)

    def test_every_target_is_a_status(self):
        for target in TRANSITIONS.values():
            assert isinstance(target, CaseStatus)


# ============================================
# Accept Tests
# ============================================

class TestAccept:
    """Test hospital acceptance planning"""

    def test_accept_pending(self, patient_data):
        plan = plan_transition(make_case(patient_data), CaseEvent.ACCEPT, HOSPITAL)

        assert plan.to_status == CaseStatus.ACCEPTED
        assert plan.binds_hospital == "hosp-001"
        assert plan.guard == {"status": "pending", "hospital_id": None}
        assert not plan.noop

    def test_accept_requires_hospital(self, patient_data):
        with pytest.raises(InvalidTransition):
            plan_transition(make_case(patient_data), CaseEvent.ACCEPT)

    def test_second_hospital_conflicts(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.ACCEPTED, hospital_id="hosp-001")
        with pytest.raises(ConflictAlreadyBound) as excinfo:
            plan_transition(case, CaseEvent.ACCEPT, TransitionContext(hospital_id="hosp-002"))

        assert excinfo.value.current["hospital_id"] == "hosp-001"

    def test_late_hospital_binding_keeps_en_route(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.EN_ROUTE, ambulance_id="amb-001")
        plan = plan_transition(case, CaseEvent.ACCEPT, HOSPITAL)

        assert plan.to_status == CaseStatus.EN_ROUTE
        assert plan.binds_hospital == "hosp-001"


# ============================================
# Dispatch Tests
# ============================================

class TestDispatch:
    """Test ambulance dispatch planning"""

    def test_self_dispatch_from_pending(self, patient_data):
        plan = plan_transition(make_case(patient_data), CaseEvent.DISPATCH, AMBULANCE)

        assert plan.to_status == CaseStatus.EN_ROUTE
        assert plan.binds_ambulance == "amb-001"
        assert plan.guard["ambulance_id"] is None

    def test_dispatch_after_accept(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.ACCEPTED, hospital_id="hosp-001")
        plan = plan_transition(case, CaseEvent.DISPATCH, AMBULANCE)
        assert plan.from_status == CaseStatus.ACCEPTED
        assert plan.to_status == CaseStatus.EN_ROUTE

    def test_repeat_dispatch_is_noop(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.EN_ROUTE, ambulance_id="amb-001")
        plan = plan_transition(case, CaseEvent.DISPATCH, AMBULANCE)

        assert plan.noop
        assert plan.to_status == CaseStatus.EN_ROUTE

    def test_dispatch_en_route_case_to_other_ambulance(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.EN_ROUTE, ambulance_id="amb-001")
        with pytest.raises(ConflictAlreadyBound) as excinfo:
            plan_transition(case, CaseEvent.DISPATCH, TransitionContext(ambulance_id="amb-002"))
        assert excinfo.value.current["ambulance_id"] == "amb-001"

    def test_same_ambulance_on_accepted_case_is_noop(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.ACCEPTED, hospital_id="hosp-001")
        case = case.model_copy(update={
            "ambulance_id": "amb-001",
            "ambulance_info": AmbulanceSnapshot(id="amb-001"),
        })
        plan = plan_transition(case, CaseEvent.DISPATCH, AMBULANCE)
        assert plan.noop

    def test_other_ambulance_conflicts(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.ACCEPTED, hospital_id="hosp-001")
        case = case.model_copy(update={
            "ambulance_id": "amb-001",
            "ambulance_info": AmbulanceSnapshot(id="amb-001"),
        })
        with pytest.raises(ConflictAlreadyBound):
            plan_transition(case, CaseEvent.DISPATCH, TransitionContext(ambulance_id="amb-002"))

    def test_dispatch_requires_ambulance(self, patient_data):
        with pytest.raises(InvalidTransition):
            plan_transition(make_case(patient_data), CaseEvent.DISPATCH)


# ============================================
# Arrive / Complete / Cancel Tests
# ============================================

class TestLaterTransitions:
    """Test arrival, completion and cancellation planning"""

    def test_arrive(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.EN_ROUTE, hospital_id="hosp-001", ambulance_id="amb-001")
        plan = plan_transition(case, CaseEvent.ARRIVE, AMBULANCE)

        assert plan.to_status == CaseStatus.ARRIVED
        assert plan.guard == {"status": "en-route", "ambulance_id": "amb-001", "hospital_id": "hosp-001"}

    def test_arrive_without_hospital(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.EN_ROUTE, ambulance_id="amb-001")
        with pytest.raises(InvalidTransition):
            plan_transition(case, CaseEvent.ARRIVE, AMBULANCE)

    def test_arrive_by_other_ambulance(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.EN_ROUTE, hospital_id="hosp-001", ambulance_id="amb-001")
        with pytest.raises(InvalidTransition):
            plan_transition(case, CaseEvent.ARRIVE, TransitionContext(ambulance_id="amb-002"))

    def test_complete_releases_ambulance(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.ARRIVED, hospital_id="hosp-001", ambulance_id="amb-001")
        plan = plan_transition(case, CaseEvent.COMPLETE)

        assert plan.to_status == CaseStatus.COMPLETED
        assert plan.releases_ambulance == "amb-001"
        assert plan.is_terminal

    def test_complete_before_arrival_rejected(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.EN_ROUTE, hospital_id="hosp-001", ambulance_id="amb-001")
        with pytest.raises(InvalidTransition):
            plan_transition(case, CaseEvent.COMPLETE)

    def test_cancel_pending_has_nothing_to_release(self, patient_data):
        plan = plan_transition(make_case(patient_data), CaseEvent.CANCEL)
        assert plan.to_status == CaseStatus.CANCELED
        assert plan.releases_ambulance is None

    def test_cancel_arrived_rejected(self, patient_data):
        case = make_case(patient_data, status=CaseStatus.ARRIVED, hospital_id="hosp-001", ambulance_id="amb-001")
        with pytest.raises(InvalidTransition):
            plan_transition(case, CaseEvent.CANCEL)

    @pytest.mark.parametrize("event", list(CaseEvent))
    @pytest.mark.parametrize("status", [CaseStatus.COMPLETED, CaseStatus.CANCELED])
    def test_terminal_cases_are_immutable(self, patient_data, status, event):
        case = make_case(patient_data, status=status, hospital_id="hosp-001", ambulance_id="amb-001")
        context = TransitionContext(hospital_id="hosp-002", ambulance_id="amb-001")

        with pytest.raises(InvalidTransition) as excinfo:
            plan_transition(case, event, context)

        assert excinfo.value.current["status"] == status.value


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
