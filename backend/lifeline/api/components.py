"""
Shared component references for the API routers.

Components are created in the app lifespan (main.py) and registered here
with set_dispatch_components().
"""

from typing import Optional

from fastapi import HTTPException

from ..dispatch import DispatchCoordinator, get_coordinator
from ..errors import (
    AmbulanceBusy,
    ConflictAlreadyBound,
    DispatchError,
    GeoLookupFailed,
    InvalidTransition,
    InvariantViolation,
    LocationUnavailable,
    NotFound,
    PreconditionFailed,
    StoreUnavailable,
    ValidationError,
)

_coordinator: Optional[DispatchCoordinator] = None


# DispatchError subclass -> HTTP status
STATUS_CODES = {
    ValidationError: 422,
    NotFound: 404,
    InvalidTransition: 409,
    ConflictAlreadyBound: 409,
    AmbulanceBusy: 409,
    PreconditionFailed: 409,
    GeoLookupFailed: 502,
    LocationUnavailable: 422,
    StoreUnavailable: 503,
    InvariantViolation: 500,
}


def status_code_for(error: DispatchError) -> int:
    for error_type, status in STATUS_CODES.items():
        if isinstance(error, error_type):
            return status
    return 500


def set_dispatch_components(coordinator: Optional[DispatchCoordinator]):
    """Set coordinator reference for API routes"""
    global _coordinator
    _coordinator = coordinator


def get_dispatch_coordinator() -> DispatchCoordinator:
    """Get coordinator, falling back to global"""
    if _coordinator:
        return _coordinator
    coordinator = get_coordinator()
    if not coordinator:
        raise HTTPException(status_code=503, detail="Dispatch system not initialized")
    return coordinator
