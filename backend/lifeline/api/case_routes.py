"""
Case Routes - Emergency case lifecycle endpoints

Endpoints:
- POST /api/cases - Create a case
- GET /api/cases - Search cases
- GET /api/cases/{case_id} - Get one case
- POST /api/cases/{case_id}/accept - Hospital accepts
- POST /api/cases/{case_id}/decline - Hospital hides the case from its queue
- POST /api/cases/{case_id}/dispatch - Bind an ambulance
- POST /api/cases/{case_id}/en-route - Crew starts transit
- POST /api/cases/{case_id}/arrive - Ambulance reached the hospital
- POST /api/cases/{case_id}/complete - Close the case
- POST /api/cases/{case_id}/cancel - Abort the case
- GET /api/cases/{case_id}/hospitals - Hospitals ranked by distance
"""

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from ..models import CaseStatus, Severity
from .components import get_dispatch_coordinator

router = APIRouter(prefix="/api/cases", tags=["cases"])


# ============================================
# Request Models
# ============================================

class CreateCaseRequest(BaseModel):
    """Case reported by an ambulance crew"""
    patient: Dict[str, Any] = Field(..., description="name, age, gender, symptoms, severity")
    location: Dict[str, Any] = Field(..., description="lat, lng and optional address")
    reportedBy: Optional[str] = Field(default=None, description="Reporting ambulance id")


class AcceptRequest(BaseModel):
    hospitalId: str


class DeclineRequest(BaseModel):
    hospitalId: str


class DispatchRequest(BaseModel):
    ambulanceId: str


class CrewRequest(BaseModel):
    """Optional acting ambulance"""
    ambulanceId: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    actor: Optional[str] = None


# ============================================
# Endpoints
# ============================================

@router.post("", status_code=201)
async def create_case(request: CreateCaseRequest):
    """
    Create a pending case

    Example:
    ```
    curl -X POST http://localhost:8000/api/cases \\
      -H "Content-Type: application/json" \\
      -d '{"patient":{"name":"Ravi","age":54,"gender":"male","symptoms":"Chest pain","severity":"critical"},
           "location":{"lat":12.9716,"lng":77.5946},"reportedBy":"amb-001"}'
    ```
    """
    coordinator = get_dispatch_coordinator()
    case = await coordinator.create_case(request.patient, request.location, reported_by=request.reportedBy)
    return case.to_document()


@router.get("")
async def search_cases(
    q: Optional[str] = Query(default=None, description="Patient name, symptoms, vehicle or driver"),
    status: Optional[CaseStatus] = None,
    severity: Optional[Severity] = None,
    since: Optional[float] = None,
    until: Optional[float] = None,
    hospitalId: Optional[str] = None
) -> Dict[str, Any]:
    """Search cases for the patient records view"""
    coordinator = get_dispatch_coordinator()
    cases = await coordinator.cases.search(
        text=q, status=status, severity=severity, since=since, until=until, hospital_id=hospitalId
    )
    return {"count": len(cases), "cases": [c.to_summary() for c in cases]}


@router.get("/{case_id}")
async def get_case(case_id: str):
    coordinator = get_dispatch_coordinator()
    case = await coordinator.cases.require(case_id)
    return case.to_document()


@router.post("/{case_id}/accept")
async def accept_case(case_id: str, request: AcceptRequest):
    """Hospital accepts the case (409 if another hospital got there first)"""
    coordinator = get_dispatch_coordinator()
    case = await coordinator.accept_case(case_id, request.hospitalId)
    return case.to_document()


@router.post("/{case_id}/decline")
async def decline_case(case_id: str, request: DeclineRequest):
    coordinator = get_dispatch_coordinator()
    case = await coordinator.decline_case(case_id, request.hospitalId)
    return case.to_document()


@router.post("/{case_id}/dispatch")
async def dispatch_case(case_id: str, request: DispatchRequest):
    """Bind an ambulance (409 if it is busy or the case is taken)"""
    coordinator = get_dispatch_coordinator()
    case = await coordinator.dispatch_case(case_id, request.ambulanceId)
    return case.to_document()


@router.post("/{case_id}/en-route")
async def mark_en_route(case_id: str, request: Optional[CrewRequest] = None):
    coordinator = get_dispatch_coordinator()
    case = await coordinator.mark_en_route(case_id, request.ambulanceId if request else None)
    return case.to_document()


@router.post("/{case_id}/arrive")
async def mark_arrived(case_id: str, request: Optional[CrewRequest] = None):
    coordinator = get_dispatch_coordinator()
    case = await coordinator.mark_arrived(case_id, request.ambulanceId if request else None)
    return case.to_document()


@router.post("/{case_id}/complete")
async def complete_case(case_id: str):
    coordinator = get_dispatch_coordinator()
    case = await coordinator.complete_case(case_id)
    return case.to_document()


@router.post("/{case_id}/cancel")
async def cancel_case(case_id: str, request: Optional[CancelRequest] = None):
    coordinator = get_dispatch_coordinator()
    request = request or CancelRequest()
    case = await coordinator.cancel_case(case_id, reason=request.reason, actor=request.actor)
    return case.to_document()


@router.get("/{case_id}/hospitals")
async def rank_hospitals_for_case(case_id: str, onlyAvailable: bool = True) -> Dict[str, Any]:
    """Hospitals closest to the case location"""
    coordinator = get_dispatch_coordinator()
    case = await coordinator.cases.require(case_id)
    candidates = await coordinator.rank_hospitals(case.location, only_available=onlyAvailable)
    return {"caseId": case_id, "hospitals": [c.to_dict() for c in candidates]}
