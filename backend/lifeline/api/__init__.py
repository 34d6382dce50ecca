"""
API Routes Package

This module exports all FastAPI routers for the dispatch backend.
"""

from .case_routes import router as case_router
from .fleet_routes import router as fleet_router
from .hospital_routes import router as hospital_router
from .route_routes import router as route_router
from .system_routes import router as system_router
from .components import set_dispatch_components, status_code_for

__all__ = [
    "case_router",
    "fleet_router",
    "hospital_router",
    "route_router",
    "system_router",
    "set_dispatch_components",
    "status_code_for",
]
