"""
Hospital Models
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from .geo import GeoPoint


class Hospital(BaseModel):
    """
    Hospital registry entry

    available_beds drops by one per accepted case; admitted_case_ids
    records which cases already took a bed so the decrement can be
    retried safely.
    """
    id: str
    name: str
    address: str = ""
    contact: str = ""
    location: Optional[GeoPoint] = None

    total_beds: int = Field(default=0, ge=0)
    available_beds: int = Field(default=0, ge=0)

    specialties: List[str] = Field(default_factory=list)
    emergency_services: bool = True
    admitted_case_ids: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "id": "hosp-001",
                "name": "St. John's Hospital",
                "address": "Sarjapur Road, Bengaluru",
                "contact": "+91 80 2206 5000",
                "location": {"lat": 12.9352, "lng": 77.6146},
                "total_beds": 40,
                "available_beds": 5
            }
        }

    @property
    def has_capacity(self) -> bool:
        return self.available_beds > 0

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Hospital":
        return cls.model_validate(doc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response"""
        return {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'contact': self.contact,
            'location': self.location.model_dump() if self.location else None,
            'beds': {
                'total': self.total_beds,
                'available': self.available_beds,
            },
            'specialties': self.specialties,
            'emergencyServices': self.emergency_services,
        }
