"""
Lifeline Emergency Dispatch
Main FastAPI Application Entry Point

Initializes FastAPI, Socket.IO, the document store, the geo providers and
the dispatch coordinator.
"""

import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import socketio
from dotenv import load_dotenv

from lifeline.errors import DispatchError

# Load environment variables
load_dotenv()

# Create Socket.IO server
sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*',
    logger=False,
    engineio_logger=False,
    ping_interval=25,
    ping_timeout=60
)

# Global instances for WebSocket
ws_emitter = None
ws_handlers = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events - startup and shutdown"""
    global ws_emitter, ws_handlers

    # Startup
    print("=" * 60)
    print("[STARTUP] Lifeline Emergency Dispatch")
    print("=" * 60)

    # Initialize configuration
    from lifeline.config import get_config
    cfg = get_config()
    print("[OK] Configuration loaded")

    # Initialize document store
    from lifeline.store import init_store
    store = init_store(cfg.get('store.backend', 'memory'))

    # Initialize geo providers
    from lifeline.services import init_geocoding_service, init_routing_service

    geocoding_cfg = cfg.get('providers.geocoding', {}) or {}
    geocoder = await init_geocoding_service(
        base_url=geocoding_cfg.get('baseUrl', "https://nominatim.openstreetmap.org"),
        user_agent=geocoding_cfg.get('userAgent', "lifeline-dispatch/1.0"),
        enabled=geocoding_cfg.get('enabled', True),
        timeout=geocoding_cfg.get('timeoutSeconds', 5),
        cache_ttl=geocoding_cfg.get('cacheTtlSeconds', 600),
        precision=geocoding_cfg.get('coordinatePrecision', 4)
    )

    routing_cfg = cfg.get('providers.routing', {}) or {}
    routing_provider = None
    if routing_cfg.get('enabled', True):
        routing_kwargs = dict(
            api_key=os.getenv(routing_cfg.get('apiKeyEnv', "GOOGLE_MAPS_API_KEY"), ""),
            timeout=routing_cfg.get('timeoutSeconds', 10),
            cache_ttl=routing_cfg.get('cacheTtlSeconds', 60)
        )
        if routing_cfg.get('baseUrl'):
            routing_kwargs['base_url'] = routing_cfg['baseUrl']
        routing_provider = await init_routing_service(**routing_kwargs)
        if not routing_provider.is_configured:
            print("[INFO] No routing API key. Using straight-line route estimates.")
    print("[OK] Geo providers initialized")

    # Initialize WebSocket emitter and handlers
    from lifeline.websocket import DispatchEmitter, DispatchHandlers, set_emitter, set_handlers

    ws_emitter = DispatchEmitter(sio)
    ws_handlers = DispatchHandlers(sio, ws_emitter)
    set_emitter(ws_emitter)
    set_handlers(ws_handlers)
    print("[OK] WebSocket emitter and handlers initialized")

    # Initialize dispatch coordinator
    from lifeline.dispatch import init_coordinator
    from lifeline.api import set_dispatch_components

    coordinator = await init_coordinator(
        store, cfg,
        geocoder=geocoder if geocoder.is_configured else None,
        routing_provider=routing_provider,
        ws_emitter=ws_emitter
    )
    ws_handlers.set_coordinator(coordinator)
    set_dispatch_components(coordinator)

    print("=" * 60)
    print("[SERVER] Ready at http://localhost:8000")
    print("[DOCS] API docs at http://localhost:8000/docs")
    print("[WS] WebSocket ready for connections")
    print("=" * 60)

    yield

    # Shutdown
    print("[SHUTDOWN] Shutting down...")

    await coordinator.shutdown()
    set_dispatch_components(None)
    print("[SHUTDOWN] Tracking sessions stopped")

    from lifeline.services import close_geocoding_service, close_routing_service
    await close_geocoding_service()
    await close_routing_service()
    print("[SHUTDOWN] Geo providers closed")

    print("[SHUTDOWN] Complete")


# Create FastAPI application
app = FastAPI(
    title="Lifeline Dispatch API",
    description="Emergency medical dispatch coordination for ambulances, hospitals and police",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
        "*"  # Allow all for development
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Error Handling
# ============================================

@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    """Map dispatch errors to HTTP responses carrying the current state"""
    from lifeline.api import status_code_for
    return JSONResponse(status_code=status_code_for(exc), content=exc.to_dict())


# ============================================
# Include API Routers
# ============================================

from lifeline.api import (
    case_router,
    fleet_router,
    hospital_router,
    route_router,
    system_router,
)

# Case routes: /api/cases, /api/cases/{id}/accept, /api/cases/{id}/dispatch, etc.
app.include_router(case_router)

# Fleet routes: /api/fleet, /api/fleet/summary, /api/fleet/{id}/location, etc.
app.include_router(fleet_router)

# Hospital routes: /api/hospitals, /api/hospitals/{id}/pending, etc.
app.include_router(hospital_router)

# Route ranking: /api/routes/rank, /api/routes/case/{id}
app.include_router(route_router)

# System routes: /api/accounts, /api/system/*
app.include_router(system_router)


# ============================================
# Root Endpoints
# ============================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint - API information"""
    return {
        "name": "Lifeline Emergency Dispatch",
        "version": "1.0.0",
        "status": "operational",
        "documentation": "/docs",
        "websocket": "ws://localhost:8000",
        "endpoints": {
            "cases": "/api/cases",
            "fleet": "/api/fleet",
            "hospitals": "/api/hospitals",
            "routes": "/api/routes/*",
            "accounts": "/api/accounts",
            "system": "/api/system/*"
        }
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint"""
    from lifeline.websocket import get_handlers

    handlers = get_handlers()
    ws_clients = len(handlers.get_connected_clients()) if handlers else 0

    return {
        "status": "healthy",
        "timestamp": time.time(),
        "websocket": {
            "connected_clients": ws_clients,
            "status": "ready"
        }
    }


@app.get("/ws/stats", tags=["websocket"])
async def websocket_stats():
    """Get WebSocket statistics"""
    from lifeline.websocket import get_emitter, get_handlers

    emitter = get_emitter()
    handlers = get_handlers()

    return {
        "emitter": emitter.get_stats() if emitter else None,
        "clients": {
            "count": len(handlers.get_connected_clients()) if handlers else 0,
            "connected": list(handlers.get_connected_clients().keys()) if handlers else []
        },
        "timestamp": time.time()
    }


# ============================================
# Create Socket.IO ASGI app
# ============================================

sio_app = socketio.ASGIApp(sio, app)


# ============================================
# WebSocket Event Reference (handled by DispatchHandlers)
# ============================================
#
# Server -> Client Events:
#   - connection:success       : Connection established
#   - case:created             : New pending case (hospitals, police)
#   - case:accepted            : Hospital accepted a case
#   - case:dispatched          : Ambulance bound and en-route
#   - case:arrived             : Ambulance reached the hospital
#   - case:completed           : Case closed
#   - case:canceled            : Case aborted
#   - case:updated             : Non-transition change (decline)
#   - ambulance:location       : Live tracking update
#   - ambulance:status         : Ambulance status changed
#
# Client -> Server Events:
#   - subscribe:role           : Join hospitals/police/ambulance rooms
#   - subscribe:case           : Follow one case
#   - unsubscribe:case         : Stop following a case
#   - ambulance:location:sample: Device location sample


# ============================================
# Entry Point
# ============================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lifeline.main:sio_app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
