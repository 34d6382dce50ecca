"""
Pydantic Models Package

All data models for the dispatch core.
Import from here for convenience.
"""

# Location models
from .geo import (
    GeoPoint,
    Location,
    AmbulanceLocation,
)

# Case models
from .case import (
    CaseStatus,
    ACTIVE_STATUSES,
    Severity,
    PatientInfo,
    AmbulanceSnapshot,
    HospitalSnapshot,
    StatusChange,
    EmergencyCase,
)

# Fleet models
from .fleet import (
    AmbulanceStatus,
    ENGAGED_STATUSES,
    MANUAL_STATUSES,
    Destination,
    Ambulance,
)

# Hospital models
from .hospital import Hospital

# Account models
from .accounts import (
    AccountStatus,
    AmbulanceDetails,
    HospitalDetails,
    PoliceDetails,
    AccountDetails,
    Account,
)

# Routing models
from .routing import (
    RouteAlternative,
    RankedRoute,
)

__all__ = [
    # Location
    "GeoPoint",
    "Location",
    "AmbulanceLocation",

    # Case
    "CaseStatus",
    "ACTIVE_STATUSES",
    "Severity",
    "PatientInfo",
    "AmbulanceSnapshot",
    "HospitalSnapshot",
    "StatusChange",
    "EmergencyCase",

    # Fleet
    "AmbulanceStatus",
    "ENGAGED_STATUSES",
    "MANUAL_STATUSES",
    "Destination",
    "Ambulance",

    # Hospital
    "Hospital",

    # Accounts
    "AccountStatus",
    "AmbulanceDetails",
    "HospitalDetails",
    "PoliceDetails",
    "AccountDetails",
    "Account",

    # Routing
    "RouteAlternative",
    "RankedRoute",
]
