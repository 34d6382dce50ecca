"""
Route Routes - Traffic-aware route ranking

Endpoints:
- POST /api/routes/rank - Rank routes between two points
- GET /api/routes/case/{case_id} - Routes from the ambulance to the case's hospital
"""

from fastapi import APIRouter
from pydantic import BaseModel
from typing import Any, Dict, Optional

from ..errors import ValidationError
from ..models import GeoPoint
from .components import get_dispatch_coordinator

router = APIRouter(prefix="/api/routes", tags=["routes"])


class RankRoutesRequest(BaseModel):
    origin: GeoPoint
    destination: GeoPoint
    departureTime: Optional[float] = None


@router.post("/rank")
async def rank_routes(request: RankRoutesRequest) -> Dict[str, Any]:
    """
    Ranked routes, fastest in traffic first

    Falls back to a single straight-line estimate when the routing
    provider is unavailable.
    """
    coordinator = get_dispatch_coordinator()
    routes = await coordinator.rank_routes(request.origin, request.destination, request.departureTime)
    return {"routes": [r.model_dump() for r in routes]}


@router.get("/case/{case_id}")
async def routes_for_case(case_id: str) -> Dict[str, Any]:
    """Routes from the bound ambulance (or the patient location) to the accepted hospital"""
    coordinator = get_dispatch_coordinator()
    case = await coordinator.cases.require(case_id)
    if case.hospital_info is None or case.hospital_info.location is None:
        raise ValidationError(f"Case {case_id} has no hospital yet", details={'caseId': case_id})

    origin = case.location
    if case.ambulance_id:
        ambulance = coordinator.fleet.by_id(case.ambulance_id)
        if ambulance is not None and ambulance.location is not None:
            origin = ambulance.location

    routes = await coordinator.rank_routes(origin, case.hospital_info.location)
    return {
        "caseId": case_id,
        "hospital": case.hospital_info.name,
        "routes": [r.model_dump() for r in routes],
    }
