"""
Pydantic schemas for log records, WebSocket events and HTTP responses.

This module contains:
- The detached record type returned by the message log
- Inbound (client -> server) and outbound (server -> client) event envelopes
- Response models for the HTTP probes
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Log Records
# =============================================================================

class MessageRecord(BaseModel):
    """
    A persisted chat message, detached from the database session.

    Immutable: a record is never updated in place.
    """
    id: int = Field(..., gt=0, description="Log-assigned, strictly increasing identifier")
    content: str = Field(..., min_length=1, description="Message text")
    author: str = Field(..., description="Identity bound to the sending connection")
    created_at: str = Field(..., description="Server time ISO-8601 UTC")

    model_config = {
        "from_attributes": True,  # Allow creating from ORM objects
        "frozen": True,
    }


# =============================================================================
# Inbound Events
# =============================================================================

class ClientEvent(BaseModel):
    """
    Envelope for every frame a client sends.

    Known events:
    - message: data is the content string
    - delete: data is the target message id (string)
    """
    event: str = Field(..., min_length=1, description="Event name")
    data: Any = Field(None, description="Event payload")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"event": "message", "data": "hi"},
                {"event": "delete", "data": "42"},
            ]
        }
    }


# =============================================================================
# Outbound Events
# =============================================================================

class MessagePayload(BaseModel):
    """Payload of the 'message' event, used for both fan-out and replay."""
    content: str
    id: str = Field(..., description="Message id as a decimal string")
    author: str
    created_at: str = Field(..., serialization_alias="createdAt")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_record(cls, record: MessageRecord) -> "MessagePayload":
        return cls(
            content=record.content,
            id=str(record.id),
            author=record.author,
            created_at=record.created_at,
        )


class DeletedPayload(BaseModel):
    """Payload of the 'deleted' invalidation event."""
    id: str = Field(..., description="Id of the removed message")


class SessionPayload(BaseModel):
    """Payload of the 'session' event sent right after the handshake."""
    sid: str = Field(..., description="Session id to present when reconnecting")
    resumed: bool = Field(..., description="True if a suspended session was restored")


class ServerEvent(BaseModel):
    """Envelope for every frame the server sends."""
    event: str
    data: Any


def message_event(record: MessageRecord) -> dict:
    """Build the wire form of a 'message' event."""
    payload = MessagePayload.from_record(record).model_dump(by_alias=True)
    return ServerEvent(event="message", data=payload).model_dump()


def deleted_event(message_id: int) -> dict:
    """Build the wire form of a 'deleted' event."""
    payload = DeletedPayload(id=str(message_id)).model_dump()
    return ServerEvent(event="deleted", data=payload).model_dump()


def session_event(sid: str, resumed: bool) -> dict:
    """Build the wire form of the handshake acknowledgement."""
    payload = SessionPayload(sid=sid, resumed=resumed).model_dump()
    return ServerEvent(event="session", data=payload).model_dump()


# =============================================================================
# Pydantic Response Models
# =============================================================================

class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
