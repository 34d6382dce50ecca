"""
WebSocket Event Type Definitions

Event names, room names and payload models for the dispatch Socket.IO
channel.

Events are categorized as:
- Server -> Client: case lifecycle and fleet updates
- Client -> Server: room subscriptions and ambulance location samples
"""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict, Literal, Optional


# ============================================
# Event Name Constants
# ============================================

class ServerEvent(str, Enum):
    """Events emitted from server to client"""

    # Connection
    CONNECTION_SUCCESS = "connection:success"

    # Case lifecycle
    CASE_CREATED = "case:created"
    CASE_ACCEPTED = "case:accepted"
    CASE_DISPATCHED = "case:dispatched"
    CASE_ARRIVED = "case:arrived"
    CASE_COMPLETED = "case:completed"
    CASE_CANCELED = "case:canceled"
    CASE_UPDATED = "case:updated"

    # Fleet
    AMBULANCE_LOCATION = "ambulance:location"
    AMBULANCE_STATUS = "ambulance:status"


class ClientEvent(str, Enum):
    """Events received from client"""

    # Connection
    CONNECT = "connect"
    DISCONNECT = "disconnect"

    # Subscriptions
    SUBSCRIBE_ROLE = "subscribe:role"
    SUBSCRIBE_CASE = "subscribe:case"
    UNSUBSCRIBE_CASE = "unsubscribe:case"

    # Ambulance device
    LOCATION_SAMPLE = "ambulance:location:sample"


# ============================================
# Rooms
# ============================================

HOSPITALS_ROOM = "hospitals"
POLICE_ROOM = "police"


def case_room(case_id: str) -> str:
    return f"case:{case_id}"


def ambulance_room(ambulance_id: str) -> str:
    return f"ambulance:{ambulance_id}"


# ============================================
# Server -> Client Event Data Models
# ============================================

class ConnectionSuccessData(BaseModel):
    """Data for connection:success event"""
    message: str = "Connected to Lifeline Dispatch"
    timestamp: float
    serverVersion: str = "1.0.0"


class CaseEventData(BaseModel):
    """Data for case:* events"""
    caseId: str
    status: str
    previousStatus: Optional[str] = None
    event: str
    case: Dict[str, Any]
    timestamp: float


class AmbulanceLocationData(BaseModel):
    """Data for ambulance:location event"""
    ambulanceId: str
    caseId: Optional[str] = None
    status: str
    location: Optional[Dict[str, Any]] = None
    severity: Optional[str] = None
    destination: Optional[Dict[str, Any]] = None
    distanceKm: Optional[float] = None
    etaMinutes: Optional[int] = None
    geocoded: bool = False
    timestamp: float


class AmbulanceStatusData(BaseModel):
    """Data for ambulance:status event"""
    ambulanceId: str
    status: str
    caseId: Optional[str] = None
    timestamp: float


# ============================================
# Client -> Server Request Models
# ============================================

class SubscribeRoleRequest(BaseModel):
    """Join the rooms for a dashboard role"""
    role: Literal["hospital", "police", "ambulance"]
    ambulanceId: Optional[str] = None


class SubscribeCaseRequest(BaseModel):
    """Follow one case"""
    caseId: str = Field(..., min_length=1)


class LocationSampleRequest(BaseModel):
    """Device location sample pushed by an ambulance client"""
    ambulanceId: str = Field(..., min_length=1)
    lat: Optional[float] = None
    lng: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: Optional[float] = None
