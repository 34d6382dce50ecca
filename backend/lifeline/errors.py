"""
Dispatch Error Taxonomy

All failures raised by the dispatch core derive from DispatchError.
Each error carries a machine-readable code and, where available, the
current state of the affected record so callers can reconcile without
a manual refresh.

Errors:
- ValidationError: missing/malformed input, rejected before any store write
- NotFound: case, ambulance or hospital does not exist
- InvalidTransition: state machine does not permit the requested event
- ConflictAlreadyBound: another actor already bound the hospital/ambulance
- AmbulanceBusy: ambulance already holds a different active case
- GeoLookupFailed: geocoding or routing provider failure
- LocationUnavailable: device geolocation failure (denied, timeout)
- StoreUnavailable: transient store failure, eligible for bounded retry
- PreconditionFailed: conditional store write lost to a concurrent writer
- InvariantViolation: programming defect (e.g. transition table gap)
"""

from typing import Any, Dict, Optional


class DispatchError(Exception):
    """Base class for all dispatch errors"""

    code = "DISPATCH_ERROR"

    def __init__(
        self,
        message: str,
        current: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.current = current
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for API responses"""
        data = {
            'error': self.code,
            'message': self.message,
        }
        if self.details:
            data['details'] = self.details
        if self.current is not None:
            data['current'] = self.current
        return data


class ValidationError(DispatchError):
    code = "VALIDATION_ERROR"


class NotFound(DispatchError):
    code = "NOT_FOUND"


class InvalidTransition(DispatchError):
    """Transition attempted from a state that does not permit it"""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        case_id: str,
        status: str,
        event: str,
        reason: Optional[str] = None,
        current: Optional[Dict[str, Any]] = None
    ):
        message = f"Cannot apply '{event}' to case {case_id} in status '{status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            current=current,
            details={'caseId': case_id, 'status': status, 'event': event}
        )
        self.case_id = case_id
        self.status = status
        self.event = event


class ConflictAlreadyBound(DispatchError):
    """A concurrent actor already bound hospital_id/ambulance_id"""

    code = "CONFLICT_ALREADY_BOUND"


class AmbulanceBusy(DispatchError):
    code = "AMBULANCE_BUSY"


class GeoLookupFailed(DispatchError):
    code = "GEO_LOOKUP_FAILED"


class LocationUnavailable(DispatchError):
    code = "LOCATION_UNAVAILABLE"


class StoreUnavailable(DispatchError):
    code = "STORE_UNAVAILABLE"


class PreconditionFailed(DispatchError):
    """Conditional write rejected because the document changed"""

    code = "PRECONDITION_FAILED"

    def __init__(self, path: str, expected: Dict[str, Any], current: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Precondition failed for {path}",
            current=current,
            details={'path': path, 'expected': expected}
        )
        self.path = path
        self.expected = expected


class InvariantViolation(DispatchError):
    code = "INVARIANT_VIOLATION"
