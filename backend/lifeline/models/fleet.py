"""
Ambulance Fleet Models

Ambulance registry entry with identity, descriptive and dynamic fields.
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from .case import Severity
from .geo import AmbulanceLocation


class AmbulanceStatus(str, Enum):
    """Ambulance operational status"""
    AVAILABLE = "available"
    BUSY = "busy"                          # at hospital with a patient
    EN_ROUTE = "en-route"
    IDLE = "idle"                          # legacy value, normalised on load
    OFFLINE = "offline"


# Statuses that require an active case
ENGAGED_STATUSES = (AmbulanceStatus.BUSY, AmbulanceStatus.EN_ROUTE)

# Statuses an operator may set by hand
MANUAL_STATUSES = (AmbulanceStatus.AVAILABLE, AmbulanceStatus.OFFLINE)


class Destination(BaseModel):
    """Where an engaged ambulance is heading and when it gets there"""
    name: str
    eta: str                               # display label, e.g. "12 min"
    eta_minutes: Optional[int] = None

    class Config:
        frozen = True


class Ambulance(BaseModel):
    """
    Ambulance registry entry

    Identity is tied to the crew account. Dynamic fields change with case
    events; location updates never change status on their own.
    """
    # Identity
    id: str

    # Descriptive
    driver_name: str = ""
    vehicle_number: str = ""
    vehicle_type: str = "Standard Ambulance"
    capacity: int = Field(default=2, ge=1)
    equipment: List[str] = Field(default_factory=list)

    # Dynamic
    status: AmbulanceStatus = AmbulanceStatus.AVAILABLE
    location: Optional[AmbulanceLocation] = None
    active_case_id: Optional[str] = None
    destination: Optional[Destination] = None
    severity: Optional[Severity] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "amb-001",
                "driver_name": "Suresh N",
                "vehicle_number": "KA01AB1234",
                "status": "en-route",
                "location": {"lat": 12.95, "lng": 77.60, "last_updated": 1760000000.0},
                "active_case_id": "case-3f2a9c1b7d40",
                "destination": {"name": "St. John's Hospital", "eta": "6 min"},
                "severity": "critical"
            }
        }

    @property
    def is_engaged(self) -> bool:
        return self.active_case_id is not None

    @property
    def last_updated(self) -> float:
        return self.location.last_updated if self.location else 0.0

    def invariant_violations(self) -> List[str]:
        """Check the active-case / status coupling"""
        problems = []

        if self.active_case_id is not None and self.status not in ENGAGED_STATUSES:
            problems.append(
                f"ambulance {self.id} holds case {self.active_case_id} "
                f"but status is {self.status.value}"
            )
        if self.active_case_id is None and self.status not in MANUAL_STATUSES:
            problems.append(
                f"ambulance {self.id} has no case but status is {self.status.value}"
            )

        return problems

    def to_document(self) -> Dict[str, Any]:
        """Serialize for the document store"""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Ambulance":
        """
        Deserialize a store document

        Records written by older clients may carry status 'idle' without a
        case; those are read back as available.
        """
        ambulance = cls.model_validate(doc)
        if ambulance.status == AmbulanceStatus.IDLE and ambulance.active_case_id is None:
            ambulance = ambulance.model_copy(update={'status': AmbulanceStatus.AVAILABLE})
        return ambulance

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response"""
        return {
            'id': self.id,
            'driverName': self.driver_name,
            'vehicleNumber': self.vehicle_number,
            'vehicleType': self.vehicle_type,
            'capacity': self.capacity,
            'status': self.status.value,
            'location': self.location.model_dump() if self.location else None,
            'caseId': self.active_case_id,
            'destination': self.destination.model_dump() if self.destination else None,
            'severity': self.severity.value if self.severity else None,
        }
