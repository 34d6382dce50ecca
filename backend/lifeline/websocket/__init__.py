"""
WebSocket Package

Real-time dispatch updates over Socket.IO.

Components:
- events: Event names, rooms and payload models
- emitter: Server->Client event emission
- handlers: Client->Server event handling

Usage:
    from lifeline.websocket import DispatchEmitter, DispatchHandlers

    emitter = DispatchEmitter(sio)
    handlers = DispatchHandlers(sio, emitter, coordinator)
"""

from .events import ServerEvent, ClientEvent
from .emitter import DispatchEmitter, get_emitter, set_emitter
from .handlers import DispatchHandlers, get_handlers, set_handlers

__all__ = [
    "ServerEvent",
    "ClientEvent",
    "DispatchEmitter",
    "DispatchHandlers",
    "get_emitter",
    "set_emitter",
    "get_handlers",
    "set_handlers",
]
