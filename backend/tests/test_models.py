"""
Pydantic Model Tests

Validation, invariants and serialization of the dispatch records.
"""

import pytest
from pydantic import ValidationError

from lifeline.models import (
    Account,
    AccountStatus,
    Ambulance,
    AmbulanceSnapshot,
    AmbulanceStatus,
    CaseStatus,
    Destination,
    EmergencyCase,
    GeoPoint,
    Hospital,
    HospitalSnapshot,
    Location,
    PatientInfo,
    RouteAlternative,
    Severity,
)


def _case(patient_data, **kwargs):
    return EmergencyCase(
        patient=PatientInfo(**patient_data),
        location=Location(lat=12.9716, lng=77.5946),
        **kwargs
    )


# ============================================
# Location Tests
# ============================================

class TestGeoPoint:
    """Test coordinate validation"""

    def test_valid_point(self):
        point = GeoPoint(lat=12.9716, lng=77.5946)
        assert point.as_tuple() == (12.9716, 77.5946)

    def test_out_of_range(self):
        with pytest.raises(ValidationError):
            GeoPoint(lat=91, lng=0)
        with pytest.raises(ValidationError):
            GeoPoint(lat=0, lng=-181)

    def test_frozen(self):
        point = GeoPoint(lat=1, lng=2)
        with pytest.raises(ValidationError):
            point.lat = 3

    def test_location_point(self):
        location = Location(lat=1, lng=2, address="Somewhere")
        assert location.point() == GeoPoint(lat=1, lng=2)


# ============================================
# Case Tests
# ============================================

class TestPatientInfo:
    """Test patient validation"""

    def test_blank_fields_rejected(self, patient_data):
        patient_data["name"] = "   "
        with pytest.raises(ValidationError):
            PatientInfo(**patient_data)

    def test_unknown_severity_rejected(self, patient_data):
        patient_data["severity"] = "mild"
        with pytest.raises(ValidationError):
            PatientInfo(**patient_data)

    def test_non_positive_age_rejected(self, patient_data):
        patient_data["age"] = 0
        with pytest.raises(ValidationError):
            PatientInfo(**patient_data)

    def test_strips_whitespace(self, patient_data):
        patient_data["symptoms"] = "  Fever  "
        assert PatientInfo(**patient_data).symptoms == "Fever"


class TestEmergencyCase:
    """Test case record invariants and serialization"""

    def test_defaults(self, patient_data):
        case = _case(patient_data)
        assert case.id.startswith("case-")
        assert case.status == CaseStatus.PENDING
        assert case.severity == Severity.CRITICAL
        assert case.invariant_violations() == []

    def test_terminal_statuses(self):
        assert CaseStatus.COMPLETED.is_terminal
        assert CaseStatus.CANCELED.is_terminal
        assert not CaseStatus.ARRIVED.is_terminal

    def test_pending_with_binding_is_inconsistent(self, patient_data):
        case = _case(
            patient_data,
            hospital_id="hosp-001",
            hospital_info=HospitalSnapshot(id="hosp-001", name="St. John's")
        )
        assert "pending case has hospital_id" in case.invariant_violations()

    def test_accepted_requires_hospital(self, patient_data):
        case = _case(patient_data, status=CaseStatus.ACCEPTED)
        assert any("no hospital_id" in p for p in case.invariant_violations())

    def test_en_route_requires_ambulance(self, patient_data):
        case = _case(patient_data, status=CaseStatus.EN_ROUTE)
        assert any("no ambulance_id" in p for p in case.invariant_violations())

    def test_snapshot_must_match_binding(self, patient_data):
        case = _case(
            patient_data,
            status=CaseStatus.EN_ROUTE,
            ambulance_id="amb-001"
        )
        assert "ambulance_id and ambulance_info out of sync" in case.invariant_violations()

    def test_self_dispatched_case_is_consistent(self, patient_data):
        case = _case(
            patient_data,
            status=CaseStatus.EN_ROUTE,
            ambulance_id="amb-001",
            ambulance_info=AmbulanceSnapshot(id="amb-001")
        )
        assert case.invariant_violations() == []

    def test_document_roundtrip(self, patient_data):
        case = _case(patient_data, reported_by=AmbulanceSnapshot(id="amb-001", vehicle_number="KA01"))
        doc = case.to_document()

        assert doc["status"] == "pending"
        assert doc["patient"]["severity"] == "critical"
        assert EmergencyCase.from_document(doc) == case

    def test_summary(self, patient_data):
        summary = _case(patient_data).to_summary()
        assert summary["status"] == "pending"
        assert summary["severity"] == "critical"
        assert summary["patientName"] == "Ravi Kumar"
        assert summary["hospitalName"] is None


# ============================================
# Fleet Tests
# ============================================

class TestAmbulance:
    """Test ambulance record"""

    def test_defaults(self):
        ambulance = Ambulance(id="amb-001")
        assert ambulance.status == AmbulanceStatus.AVAILABLE
        assert not ambulance.is_engaged
        assert ambulance.last_updated == 0.0
        assert ambulance.invariant_violations() == []

    def test_case_requires_engaged_status(self):
        ambulance = Ambulance(id="amb-001", active_case_id="case-1", status=AmbulanceStatus.AVAILABLE)
        assert ambulance.invariant_violations()

    def test_engaged_status_requires_case(self):
        ambulance = Ambulance(id="amb-001", status=AmbulanceStatus.EN_ROUTE)
        assert ambulance.invariant_violations()

    def test_legacy_idle_normalized(self):
        ambulance = Ambulance.from_document({"id": "amb-001", "status": "idle"})
        assert ambulance.status == AmbulanceStatus.AVAILABLE

    def test_to_dict(self):
        ambulance = Ambulance(
            id="amb-001",
            status=AmbulanceStatus.EN_ROUTE,
            active_case_id="case-1",
            destination=Destination(name="St. John's", eta="6 min", eta_minutes=6),
            severity=Severity.SERIOUS
        )
        data = ambulance.to_dict()
        assert data["status"] == "en-route"
        assert data["caseId"] == "case-1"
        assert data["destination"]["name"] == "St. John's"
        assert data["severity"] == "serious"


class TestHospital:
    """Test hospital record"""

    def test_negative_beds_rejected(self):
        with pytest.raises(ValidationError):
            Hospital(id="h", name="H", available_beds=-1)

    def test_capacity(self):
        assert Hospital(id="h", name="H", available_beds=1).has_capacity
        assert not Hospital(id="h", name="H", available_beds=0).has_capacity

    def test_to_dict(self):
        data = Hospital(id="h", name="H", total_beds=10, available_beds=3).to_dict()
        assert data["beds"] == {"total": 10, "available": 3}


# ============================================
# Account Tests
# ============================================

class TestAccount:
    """Test role-tagged accounts"""

    def test_ambulance_account(self):
        account = Account.model_validate({
            "id": "amb-001",
            "name": "Suresh N",
            "email": "suresh@example.com",
            "status": "approved",
            "details": {"role": "ambulance", "vehicle_number": "KA01AB1234"}
        })
        assert account.role == "ambulance"
        assert account.is_approved

        ambulance = account.to_ambulance()
        assert ambulance.driver_name == "Suresh N"
        assert ambulance.vehicle_number == "KA01AB1234"
        assert ambulance.status == AmbulanceStatus.AVAILABLE

    def test_hospital_account(self):
        account = Account.model_validate({
            "id": "hosp-001",
            "name": "St. John's",
            "email": "er@stjohns.example",
            "details": {
                "role": "hospital",
                "address": "Sarjapur Road",
                "contact": "+91 80 2206 5000",
                "location": {"lat": 12.9352, "lng": 77.6146},
                "total_beds": 40,
                "available_beds": 5
            }
        })
        assert account.status == AccountStatus.PENDING
        hospital = account.to_hospital()
        assert hospital.available_beds == 5
        assert hospital.location == GeoPoint(lat=12.9352, lng=77.6146)

    def test_role_specific_fields_required(self):
        with pytest.raises(ValidationError):
            Account.model_validate({
                "id": "p1", "name": "Officer", "email": "o@example.com",
                "details": {"role": "police"}
            })

    def test_wrong_projection(self):
        account = Account.model_validate({
            "id": "p1", "name": "Officer", "email": "o@example.com",
            "details": {"role": "police", "badge_number": "B-17", "department": "Traffic East"}
        })
        with pytest.raises(ValueError):
            account.to_ambulance()


# ============================================
# Routing Tests
# ============================================

class TestRouteAlternative:

    def test_traffic_seconds_falls_back(self):
        assert RouteAlternative(distance_meters=1000, duration_seconds=120).traffic_seconds == 120
        alt = RouteAlternative(distance_meters=1000, duration_seconds=120, duration_in_traffic_seconds=300)
        assert alt.traffic_seconds == 300


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
