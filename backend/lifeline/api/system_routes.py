"""
System Routes - Accounts, maintenance and statistics

Endpoints:
- POST /api/accounts - Register an account (approved ones join the registries)
- POST /api/system/reconcile - Re-drive deferred bed reservations and releases
- GET /api/system/statistics - Dispatch statistics
- GET /api/system/providers - External provider status
"""

from fastapi import APIRouter
from typing import Any, Dict

from ..models import Account
from ..services import get_geocoding_service, get_routing_service
from .components import get_dispatch_coordinator

router = APIRouter(prefix="/api", tags=["system"])


@router.post("/accounts", status_code=201)
async def register_account(account: Account):
    coordinator = get_dispatch_coordinator()
    registered = await coordinator.register_account(account)
    return registered.model_dump(mode="json")


@router.post("/system/reconcile")
async def reconcile() -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    return await coordinator.reconcile()


@router.get("/system/statistics")
async def statistics() -> Dict[str, Any]:
    coordinator = get_dispatch_coordinator()
    return coordinator.get_statistics()


@router.get("/system/providers")
async def providers() -> Dict[str, Any]:
    routing = get_routing_service()
    geocoding = get_geocoding_service()
    return {
        "routing": {**routing.status.model_dump(), "cache": routing.get_cache_stats()},
        "geocoding": {**geocoding.status.model_dump(), "cache": geocoding.get_cache_stats()},
    }
