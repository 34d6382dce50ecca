"""
Account Models

Common account envelope with role-specific details as a tagged union.
The details type is selected by the `role` discriminator, so each role's
required fields are known statically.
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Optional, Union

from .fleet import Ambulance
from .geo import GeoPoint
from .hospital import Hospital


class AccountStatus(str, Enum):
    """Approval status (approval workflow itself lives outside the core)"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AmbulanceDetails(BaseModel):
    role: Literal['ambulance'] = 'ambulance'
    vehicle_number: str
    vehicle_type: str = "Standard Ambulance"
    capacity: int = Field(default=2, ge=1)
    equipment: List[str] = Field(default_factory=list)
    phone: Optional[str] = None


class HospitalDetails(BaseModel):
    role: Literal['hospital'] = 'hospital'
    address: str
    contact: str
    location: GeoPoint
    total_beds: int = Field(..., ge=0)
    available_beds: int = Field(..., ge=0)
    specialties: List[str] = Field(default_factory=list)
    emergency_services: bool = True


class PoliceDetails(BaseModel):
    role: Literal['police'] = 'police'
    badge_number: str
    department: str
    rank: str = ""
    on_duty: bool = True


AccountDetails = Annotated[
    Union[AmbulanceDetails, HospitalDetails, PoliceDetails],
    Field(discriminator='role')
]


class Account(BaseModel):
    """User account envelope shared by all roles"""
    id: str
    name: str
    email: str
    status: AccountStatus = AccountStatus.PENDING
    details: AccountDetails

    @property
    def role(self) -> str:
        return self.details.role

    @property
    def is_approved(self) -> bool:
        return self.status == AccountStatus.APPROVED

    def to_ambulance(self) -> Ambulance:
        """Project an ambulance account into a fleet registry entry"""
        if not isinstance(self.details, AmbulanceDetails):
            raise ValueError(f"Account {self.id} is not an ambulance account")

        return Ambulance(
            id=self.id,
            driver_name=self.name,
            vehicle_number=self.details.vehicle_number,
            vehicle_type=self.details.vehicle_type,
            capacity=self.details.capacity,
            equipment=list(self.details.equipment),
        )

    def to_hospital(self) -> Hospital:
        """Project a hospital account into a hospital registry entry"""
        if not isinstance(self.details, HospitalDetails):
            raise ValueError(f"Account {self.id} is not a hospital account")

        return Hospital(
            id=self.id,
            name=self.name,
            address=self.details.address,
            contact=self.details.contact,
            location=self.details.location,
            total_beds=self.details.total_beds,
            available_beds=self.details.available_beds,
            specialties=list(self.details.specialties),
            emergency_services=self.details.emergency_services,
        )
