"""
Emergency Case Models

EmergencyCase record, patient data and the immutable snapshots taken at
transition boundaries (hospital at acceptance, ambulance at dispatch).
"""

from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional
from uuid import uuid4
import time

from .geo import GeoPoint, Location


class CaseStatus(str, Enum):
    """Emergency case lifecycle status"""
    PENDING = "pending"
    ACCEPTED = "accepted"
    EN_ROUTE = "en-route"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (CaseStatus.COMPLETED, CaseStatus.CANCELED)


ACTIVE_STATUSES = (CaseStatus.ACCEPTED, CaseStatus.EN_ROUTE, CaseStatus.ARRIVED)


class Severity(str, Enum):
    """Patient severity as triaged by the crew"""
    CRITICAL = "critical"
    SERIOUS = "serious"
    STABLE = "stable"


class PatientInfo(BaseModel):
    """Patient data entered by the ambulance crew"""
    name: str = Field(..., min_length=1)
    age: int = Field(..., gt=0, le=150)
    gender: str = Field(..., min_length=1)
    symptoms: str = Field(..., min_length=1)
    severity: Severity

    @field_validator('name', 'gender', 'symptoms')
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class AmbulanceSnapshot(BaseModel):
    """
    Ambulance info copied onto the case at dispatch time

    Point-in-time audit copy; never mutated after creation.
    """
    id: str
    driver_name: str = ""
    vehicle_number: str = ""
    eta_minutes: Optional[int] = None
    eta_label: Optional[str] = None

    class Config:
        frozen = True


class HospitalSnapshot(BaseModel):
    """Hospital info copied onto the case at acceptance time"""
    id: str
    name: str
    address: str = ""
    contact: str = ""
    distance_km: Optional[float] = None
    beds_at_acceptance: int = 0
    location: Optional[GeoPoint] = None

    class Config:
        frozen = True


class StatusChange(BaseModel):
    """One entry of the case transition history"""
    from_status: Optional[CaseStatus] = None
    to_status: CaseStatus
    event: str
    actor: Optional[str] = None
    at: float = Field(default_factory=time.time)

    class Config:
        frozen = True


class EmergencyCase(BaseModel):
    """
    Emergency case tracking one patient incident end-to-end

    ambulance_id / hospital_id are the authoritative bindings.
    reported_by is the crew that created the case (display only).
    """
    id: str = Field(default_factory=lambda: f"case-{uuid4().hex[:12]}")

    # Patient
    patient: PatientInfo

    # Location
    location: Location

    # Lifecycle
    status: CaseStatus = CaseStatus.PENDING
    ambulance_id: Optional[str] = None
    hospital_id: Optional[str] = None
    ambulance_info: Optional[AmbulanceSnapshot] = None
    hospital_info: Optional[HospitalSnapshot] = None
    reported_by: Optional[AmbulanceSnapshot] = None

    # Hospital queue / bookkeeping
    declined_by: List[str] = Field(default_factory=list)
    bed_reserved: bool = False
    cancel_reason: Optional[str] = None
    history: List[StatusChange] = Field(default_factory=list)

    # Timestamps
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    class Config:
        json_schema_extra = {
            "example": {
                "id": "case-3f2a9c1b7d40",
                "patient": {
                    "name": "Ravi Kumar",
                    "age": 54,
                    "gender": "male",
                    "symptoms": "Chest pain, shortness of breath",
                    "severity": "critical"
                },
                "location": {"lat": 12.9716, "lng": 77.5946, "address": "MG Road"},
                "status": "pending"
            }
        }

    @property
    def severity(self) -> Severity:
        return self.patient.severity

    def invariant_violations(self) -> List[str]:
        """
        Check binding invariants for the current status

        Returns:
            List of human-readable violations (empty when consistent)
        """
        problems = []
        status = self.status

        if status == CaseStatus.PENDING:
            if self.hospital_id is not None:
                problems.append("pending case has hospital_id")
            if self.ambulance_id is not None:
                problems.append("pending case has ambulance_id")

        if status in (CaseStatus.ACCEPTED, CaseStatus.ARRIVED, CaseStatus.COMPLETED):
            if self.hospital_id is None:
                problems.append(f"{status.value} case has no hospital_id")

        if status in (CaseStatus.EN_ROUTE, CaseStatus.ARRIVED, CaseStatus.COMPLETED):
            if self.ambulance_id is None:
                problems.append(f"{status.value} case has no ambulance_id")

        if (self.hospital_id is None) != (self.hospital_info is None):
            problems.append("hospital_id and hospital_info out of sync")
        if (self.ambulance_id is None) != (self.ambulance_info is None):
            problems.append("ambulance_id and ambulance_info out of sync")

        return problems

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the document store"""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "EmergencyCase":
        """Deserialize a store document"""
        return cls.model_validate(doc)

    def to_summary(self) -> Dict[str, Any]:
        """Compact view for lists and notifications"""
        return {
            'caseId': self.id,
            'status': self.status.value,
            'severity': self.patient.severity.value,
            'patientName': self.patient.name,
            'location': self.location.model_dump(),
            'ambulanceId': self.ambulance_id,
            'hospitalId': self.hospital_id,
            'hospitalName': self.hospital_info.name if self.hospital_info else None,
            'eta': self.ambulance_info.eta_label if self.ambulance_info else None,
            'updatedAt': self.updated_at,
        }
