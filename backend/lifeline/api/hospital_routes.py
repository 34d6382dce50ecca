"""
Hospital Routes - Hospital registry and dashboard queues

Endpoints:
- GET /api/hospitals - All hospitals (optionally ranked from lat/lng)
- POST /api/hospitals - Register a hospital
- GET /api/hospitals/{hospital_id} - One hospital
- PUT /api/hospitals/{hospital_id}/beds - Correct the bed count
- GET /api/hospitals/{hospital_id}/pending - Pending queue
- GET /api/hospitals/{hospital_id}/active - Accepted, en-route and arrived cases
- GET /api/hospitals/{hospital_id}/history - Closed cases
"""

from fastapi import APIRouter
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from ..models import GeoPoint, Hospital
from .components import get_dispatch_coordinator

router = APIRouter(prefix="/api/hospitals", tags=["hospitals"])


class BedsRequest(BaseModel):
    availableBeds: int = Field(..., ge=0)


@router.get("")
async def list_hospitals(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    onlyAvailable: bool = False
) -> Dict[str, Any]:
    """All hospitals; ranked by distance when lat/lng are given"""
    coordinator = get_dispatch_coordinator()
    if lat is not None and lng is not None:
        candidates = await coordinator.rank_hospitals(GeoPoint(lat=lat, lng=lng), only_available=onlyAvailable)
        return {"count": len(candidates), "hospitals": [c.to_dict() for c in candidates]}

    hospitals = await coordinator.hospitals.all()
    if onlyAvailable:
        hospitals = [h for h in hospitals if h.has_capacity]
    return {"count": len(hospitals), "hospitals": [h.to_dict() for h in hospitals]}


@router.post("", status_code=201)
async def register_hospital(hospital: Hospital):
    coordinator = get_dispatch_coordinator()
    registered = await coordinator.hospitals.register(hospital)
    return registered.to_dict()


@router.get("/{hospital_id}")
async def get_hospital(hospital_id: str):
    coordinator = get_dispatch_coordinator()
    hospital = await coordinator.hospitals.require(hospital_id)
    return hospital.to_dict()


@router.put("/{hospital_id}/beds")
async def set_beds(hospital_id: str, request: BedsRequest):
    coordinator = get_dispatch_coordinator()
    hospital = await coordinator.hospitals.set_beds(hospital_id, request.availableBeds)
    return hospital.to_dict()


@router.get("/{hospital_id}/pending")
async def pending_cases(hospital_id: str) -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    cases = await coordinator.pending_cases_for_hospital(hospital_id)
    return {"hospitalId": hospital_id, "cases": [c.to_summary() for c in cases]}


@router.get("/{hospital_id}/active")
async def active_cases(hospital_id: str) -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    await coordinator.hospitals.require(hospital_id)
    cases = await coordinator.cases.active_for_hospital(hospital_id)
    return {"hospitalId": hospital_id, "cases": [c.to_summary() for c in cases]}


@router.get("/{hospital_id}/history")
async def case_history(hospital_id: str) -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    await coordinator.hospitals.require(hospital_id)
    cases = await coordinator.cases.history_for_hospital(hospital_id)
    return {"hospitalId": hospital_id, "cases": [c.to_summary() for c in cases]}
