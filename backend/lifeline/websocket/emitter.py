"""
WebSocket Event Emitter

Pushes case lifecycle and fleet updates to connected dashboards.

Rooms:
- hospitals: every hospital dashboard (pending queue changes)
- police: fleet overview
- case:{id}: everyone following one case
- ambulance:{id}: the crew of one ambulance

Emission failures are logged and counted, never raised: a dropped
notification must not fail the transition that caused it.
"""

import time
from typing import Any, Dict, Iterable, Optional

from ..models.case import CaseStatus, EmergencyCase
from ..models.fleet import Ambulance
from .events import (
    AmbulanceLocationData,
    AmbulanceStatusData,
    CaseEventData,
    ConnectionSuccessData,
    HOSPITALS_ROOM,
    POLICE_ROOM,
    ServerEvent,
    ambulance_room,
    case_room,
)


# Status reached -> event announcing it
STATUS_EVENTS = {
    CaseStatus.ACCEPTED: ServerEvent.CASE_ACCEPTED,
    CaseStatus.EN_ROUTE: ServerEvent.CASE_DISPATCHED,
    CaseStatus.ARRIVED: ServerEvent.CASE_ARRIVED,
    CaseStatus.COMPLETED: ServerEvent.CASE_COMPLETED,
    CaseStatus.CANCELED: ServerEvent.CASE_CANCELED,
}


class DispatchEmitter:
    """
    Centralized WebSocket event emitter

    Usage:
        emitter = DispatchEmitter(sio)
        await emitter.emit_case_created(case)
    """

    def __init__(self, sio):
        """
        Initialize the emitter

        Args:
            sio: Socket.IO AsyncServer instance
        """
        self.sio = sio

        # Statistics
        self._emit_count = 0
        self._error_count = 0
        self._last_emit_time = 0.0

    # ============================================
    # Connection Events
    # ============================================

    async def emit_connection_success(self, sid: str):
        """Emit connection success to specific client"""
        data = ConnectionSuccessData(timestamp=time.time())
        await self._emit(ServerEvent.CONNECTION_SUCCESS.value, data.model_dump(), room=sid)

    # ============================================
    # Case Events
    # ============================================

    async def emit_case_created(self, case: EmergencyCase):
        """New pending case: every hospital queue and the reporting crew"""
        data = CaseEventData(
            caseId=case.id,
            status=case.status.value,
            event="create",
            case=case.to_summary(),
            timestamp=time.time()
        )
        rooms = [HOSPITALS_ROOM, POLICE_ROOM]
        if case.reported_by:
            rooms.append(ambulance_room(case.reported_by.id))
        await self._emit_many(ServerEvent.CASE_CREATED.value, data.model_dump(), rooms)

    async def emit_case_transition(self, before: EmergencyCase, after: EmergencyCase, event: str):
        """Case changed status (or gained a binding)"""
        server_event = ServerEvent.CASE_UPDATED
        if before.status != after.status:
            server_event = STATUS_EVENTS.get(after.status, ServerEvent.CASE_UPDATED)

        data = CaseEventData(
            caseId=after.id,
            status=after.status.value,
            previousStatus=before.status.value,
            event=event,
            case=after.to_summary(),
            timestamp=time.time()
        )
        await self._emit_many(server_event.value, data.model_dump(), self._case_rooms(after))

    async def emit_case_updated(self, case: EmergencyCase, event: str):
        """Non-lifecycle change (decline, bed reservation)"""
        data = CaseEventData(
            caseId=case.id,
            status=case.status.value,
            previousStatus=case.status.value,
            event=event,
            case=case.to_summary(),
            timestamp=time.time()
        )
        await self._emit_many(ServerEvent.CASE_UPDATED.value, data.model_dump(), self._case_rooms(case))

    def _case_rooms(self, case: EmergencyCase):
        rooms = [case_room(case.id), HOSPITALS_ROOM, POLICE_ROOM]
        for ambulance_id in {case.ambulance_id, case.reported_by.id if case.reported_by else None}:
            if ambulance_id:
                rooms.append(ambulance_room(ambulance_id))
        return rooms

    # ============================================
    # Fleet Events
    # ============================================

    async def emit_tracking_update(self, update):
        """Location sample published by the tracking feed"""
        payload = update.to_dict()
        data = AmbulanceLocationData(timestamp=time.time(), **payload)

        rooms = [POLICE_ROOM, ambulance_room(update.ambulance.id)]
        if update.case_id:
            rooms.append(case_room(update.case_id))
        await self._emit_many(ServerEvent.AMBULANCE_LOCATION.value, data.model_dump(), rooms)

    async def emit_ambulance_status(self, ambulance: Ambulance):
        """Ambulance status changed (bind, arrival, release, manual)"""
        data = AmbulanceStatusData(
            ambulanceId=ambulance.id,
            status=ambulance.status.value,
            caseId=ambulance.active_case_id,
            timestamp=time.time()
        )
        await self._emit_many(
            ServerEvent.AMBULANCE_STATUS.value,
            data.model_dump(),
            [POLICE_ROOM, ambulance_room(ambulance.id)]
        )

    # ============================================
    # Internal Methods
    # ============================================

    async def _emit_many(self, event: str, data: Any, rooms: Iterable[str]):
        for room in dict.fromkeys(rooms):
            await self._emit(event, data, room=room)

    async def _emit(self, event: str, data: Any, room: Optional[str] = None):
        """
        Internal emit with error handling and statistics

        Args:
            event: Event name
            data: Event data
            room: Optional room to emit to
        """
        try:
            if room:
                await self.sio.emit(event, data, room=room)
            else:
                await self.sio.emit(event, data)

            self._emit_count += 1
            self._last_emit_time = time.time()

        except Exception as e:
            self._error_count += 1
            print(f"[WS ERROR] Failed to emit {event}: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Get emitter statistics"""
        return {
            "totalEmits": self._emit_count,
            "errorCount": self._error_count,
            "lastEmitTime": self._last_emit_time,
        }


# Global emitter instance (initialized in main.py)
emitter: Optional[DispatchEmitter] = None


def get_emitter() -> Optional[DispatchEmitter]:
    """Get the global WebSocket emitter instance"""
    return emitter


def set_emitter(e: DispatchEmitter):
    """Set the global WebSocket emitter instance"""
    global emitter
    emitter = e
