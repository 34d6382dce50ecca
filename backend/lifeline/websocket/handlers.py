"""
WebSocket Client Event Handlers

Room subscriptions for the hospital, police and ambulance dashboards,
plus location samples pushed by ambulance devices.

All handlers are registered with the Socket.IO server in main.py.
"""

import time
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ..errors import DispatchError
from .emitter import DispatchEmitter
from .events import (
    ClientEvent,
    HOSPITALS_ROOM,
    LocationSampleRequest,
    POLICE_ROOM,
    SubscribeCaseRequest,
    SubscribeRoleRequest,
    ambulance_room,
    case_room,
)


class DispatchHandlers:
    """
    Centralized WebSocket event handlers

    Handles client->server events and delegates to the dispatch coordinator.
    """

    def __init__(self, sio, emitter: DispatchEmitter, coordinator=None):
        """
        Initialize handlers

        Args:
            sio: Socket.IO AsyncServer instance
            emitter: WebSocket emitter instance
            coordinator: DispatchCoordinator (may be attached later)
        """
        self.sio = sio
        self.emitter = emitter
        self.coordinator = coordinator

        # Track connected clients
        self._clients: Dict[str, Dict[str, Any]] = {}

        self._register_handlers()

    def set_coordinator(self, coordinator):
        self.coordinator = coordinator

    def _register_handlers(self):
        """Register all Socket.IO event handlers"""
        self.sio.on(ClientEvent.CONNECT.value, self.handle_connect)
        self.sio.on(ClientEvent.DISCONNECT.value, self.handle_disconnect)

        self.sio.on(ClientEvent.SUBSCRIBE_ROLE.value, self.handle_subscribe_role)
        self.sio.on(ClientEvent.SUBSCRIBE_CASE.value, self.handle_subscribe_case)
        self.sio.on(ClientEvent.UNSUBSCRIBE_CASE.value, self.handle_unsubscribe_case)

        self.sio.on(ClientEvent.LOCATION_SAMPLE.value, self.handle_location_sample)

    # ============================================
    # Connection Handlers
    # ============================================

    async def handle_connect(self, sid: str, environ: Dict, auth: Optional[Dict] = None):
        """
        Handle client connection

        Args:
            sid: Session ID
            environ: Connection environment
        """
        self._clients[sid] = {
            "sid": sid,
            "connected_at": time.time(),
            "remote_addr": environ.get("REMOTE_ADDR", "unknown"),
            "rooms": [],
        }
        print(f"[WS] Client connected: {sid} from {self._clients[sid]['remote_addr']}")

        await self.emitter.emit_connection_success(sid)

    async def handle_disconnect(self, sid: str, *args):
        """Handle client disconnection"""
        client = self._clients.pop(sid, None)
        if client:
            duration = time.time() - client["connected_at"]
            print(f"[WS] Client disconnected: {sid} (duration: {duration:.1f}s)")

    # ============================================
    # Subscription Handlers
    # ============================================

    async def handle_subscribe_role(self, sid: str, data: Dict):
        """
        Join the rooms of a dashboard role

        Args:
            sid: Session ID
            data: {role: 'hospital'|'police'|'ambulance', ambulanceId?}
        """
        try:
            request = SubscribeRoleRequest(**(data or {}))
        except PydanticValidationError as e:
            await self._reply(sid, "subscribe:role:response", {"status": "error", "message": str(e)})
            return

        if request.role == "hospital":
            room = HOSPITALS_ROOM
        elif request.role == "police":
            room = POLICE_ROOM
        else:
            if not request.ambulanceId:
                await self._reply(sid, "subscribe:role:response", {
                    "status": "error",
                    "message": "ambulanceId is required for the ambulance role"
                })
                return
            room = ambulance_room(request.ambulanceId)

        await self._enter(sid, room)
        await self._reply(sid, "subscribe:role:response", {"status": "success", "room": room})

    async def handle_subscribe_case(self, sid: str, data: Dict):
        """Follow one case: {caseId}"""
        try:
            request = SubscribeCaseRequest(**(data or {}))
        except PydanticValidationError as e:
            await self._reply(sid, "subscribe:case:response", {"status": "error", "message": str(e)})
            return

        room = case_room(request.caseId)
        await self._enter(sid, room)
        await self._reply(sid, "subscribe:case:response", {"status": "success", "room": room})

    async def handle_unsubscribe_case(self, sid: str, data: Dict):
        """Stop following a case: {caseId}"""
        case_id = (data or {}).get("caseId")
        if not case_id:
            return
        room = case_room(case_id)
        await self.sio.leave_room(sid, room)
        if sid in self._clients and room in self._clients[sid]["rooms"]:
            self._clients[sid]["rooms"].remove(room)

    # ============================================
    # Ambulance Device Handlers
    # ============================================

    async def handle_location_sample(self, sid: str, data: Dict):
        """
        Location sample from an ambulance device

        Args:
            sid: Session ID
            data: {ambulanceId, lat, lng, accuracy?, timestamp?}
        """
        if self.coordinator is None:
            await self._reply(sid, "ambulance:location:response", {
                "status": "error",
                "error": "SERVICE_UNAVAILABLE",
                "message": "Dispatch coordinator not initialized"
            })
            return

        try:
            request = LocationSampleRequest(**(data or {}))
        except PydanticValidationError as e:
            await self._reply(sid, "ambulance:location:response", {
                "status": "error",
                "error": "VALIDATION_ERROR",
                "message": str(e)
            })
            return

        try:
            update = await self.coordinator.update_ambulance_location(
                request.ambulanceId,
                request.lat,
                request.lng,
                accuracy=request.accuracy,
                timestamp=request.timestamp
            )
        except DispatchError as e:
            await self._reply(sid, "ambulance:location:response", {"status": "error", **e.to_dict()})
            return

        if update is None:
            await self._reply(sid, "ambulance:location:response", {"status": "ignored"})
            return

        await self._reply(sid, "ambulance:location:response", {"status": "success", "update": update.to_dict()})

    # ============================================
    # Helpers
    # ============================================

    async def _enter(self, sid: str, room: str):
        await self.sio.enter_room(sid, room)
        if sid in self._clients and room not in self._clients[sid]["rooms"]:
            self._clients[sid]["rooms"].append(room)
        print(f"[WS] Client {sid} joined {room}")

    async def _reply(self, sid: str, event: str, payload: Dict[str, Any]):
        payload.setdefault("timestamp", time.time())
        await self.sio.emit(event, payload, room=sid)

    def get_connected_clients(self) -> Dict[str, Dict[str, Any]]:
        return dict(self._clients)

    def is_client_connected(self, sid: str) -> bool:
        return sid in self._clients


# Global handlers instance (initialized in main.py)
handlers: Optional[DispatchHandlers] = None


def get_handlers() -> Optional[DispatchHandlers]:
    """Get the global WebSocket handlers instance"""
    return handlers


def set_handlers(h: DispatchHandlers):
    """Set the global WebSocket handlers instance"""
    global handlers
    handlers = h
