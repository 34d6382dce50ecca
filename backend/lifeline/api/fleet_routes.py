"""
Fleet Routes - Ambulance registry and tracking endpoints

Endpoints:
- GET /api/fleet - All ambulances
- POST /api/fleet - Register an ambulance
- GET /api/fleet/summary - Police counts
- GET /api/fleet/nearby - Ambulances near a point
- GET /api/fleet/{ambulance_id} - One ambulance
- POST /api/fleet/{ambulance_id}/location - Location sample
- POST /api/fleet/{ambulance_id}/status - Manual available/offline
- GET /api/fleet/{ambulance_id}/cases - Cases the crew is working on
- GET /api/fleet/{ambulance_id}/pending - Pending cases by distance
"""

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional

from ..errors import NotFound
from ..models import Ambulance, AmbulanceStatus, GeoPoint
from .components import get_dispatch_coordinator

router = APIRouter(prefix="/api/fleet", tags=["fleet"])


class LocationRequest(BaseModel):
    """Device location sample"""
    lat: Optional[float] = None
    lng: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: Optional[float] = None


class StatusRequest(BaseModel):
    status: AmbulanceStatus = Field(..., description="available or offline")


def _point(lat: float, lng: float) -> GeoPoint:
    try:
        return GeoPoint(lat=lat, lng=lng)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("")
async def list_ambulances() -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    ambulances = coordinator.fleet.all()
    return {"count": len(ambulances), "ambulances": [a.to_dict() for a in ambulances]}


@router.post("", status_code=201)
async def register_ambulance(ambulance: Ambulance):
    coordinator = get_dispatch_coordinator()
    registered = await coordinator.fleet.register(ambulance)
    return registered.to_dict()


@router.get("/summary")
async def fleet_summary(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radiusKm: Optional[float] = Query(default=None, ge=0)
) -> Dict[str, Any]:
    """Police overview counts (nearby only when lat/lng are given)"""
    coordinator = get_dispatch_coordinator()
    origin = _point(lat, lng) if lat is not None and lng is not None else None
    return coordinator.fleet_summary(origin, radiusKm)


@router.get("/nearby")
async def nearby_ambulances(
    lat: float,
    lng: float,
    radiusKm: Optional[float] = Query(default=None, ge=0)
) -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    nearby = await coordinator.nearby_ambulances(_point(lat, lng), radiusKm)
    return {"count": len(nearby), "ambulances": [n.to_dict() for n in nearby]}


@router.get("/{ambulance_id}")
async def get_ambulance(ambulance_id: str):
    coordinator = get_dispatch_coordinator()
    ambulance = coordinator.fleet.by_id(ambulance_id)
    if ambulance is None:
        raise NotFound(f"Ambulance not found: {ambulance_id}", details={'ambulanceId': ambulance_id})
    return ambulance.to_dict()


@router.post("/{ambulance_id}/location")
async def update_location(ambulance_id: str, request: LocationRequest) -> Dict[str, Any]:
    """Publish a location sample; samples without a position are ignored"""
    coordinator = get_dispatch_coordinator()
    update = await coordinator.update_ambulance_location(
        ambulance_id, request.lat, request.lng,
        accuracy=request.accuracy, timestamp=request.timestamp
    )
    if update is None:
        return {"status": "ignored", "ambulanceId": ambulance_id}
    return {"status": "published", "update": update.to_dict()}


@router.post("/{ambulance_id}/status")
async def set_status(ambulance_id: str, request: StatusRequest):
    coordinator = get_dispatch_coordinator()
    ambulance = await coordinator.set_ambulance_status(ambulance_id, request.status)
    return ambulance.to_dict()


@router.get("/{ambulance_id}/cases")
async def active_cases(ambulance_id: str) -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    await coordinator.fleet.require(ambulance_id)
    cases = await coordinator.cases.active_for_ambulance(ambulance_id)
    return {"ambulanceId": ambulance_id, "cases": [c.to_summary() for c in cases]}


@router.get("/{ambulance_id}/pending")
async def pending_cases(ambulance_id: str) -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    candidates = await coordinator.pending_cases_for_ambulance(ambulance_id)
    return {"ambulanceId": ambulance_id, "cases": [c.to_dict() for c in candidates]}
