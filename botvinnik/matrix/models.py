"""Pydantic models for Matrix sync data consumed by the bot."""

from typing import List, Optional

from pydantic import BaseModel, Field


class MessageContent(BaseModel):
    """Content of an m.room.message event."""

    msgtype: str
    body: str
    format: Optional[str] = None
    formatted_body: Optional[str] = None


class MessageEvent(BaseModel):
    """Raw m.room.message event as found in a room timeline."""

    type: str
    sender: str
    origin_server_ts: int
    content: MessageContent
    event_id: Optional[str] = None


class TextMessage(BaseModel):
    """A text message (msgtype m.text) in a room."""

    sender: str = Field(..., description="Matrix user id of the sender")
    server_ts: int = Field(..., description="Server timestamp in milliseconds")
    body: str
    format: Optional[str] = None
    formatted_body: Optional[str] = None
    event_id: Optional[str] = None


class RoomEvents(BaseModel):
    """New text messages of one joined room, in timeline order."""

    room_id: str
    texts: List[TextMessage] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Everything the bot needs from one /sync response."""

    next_batch: str
    rooms: List[RoomEvents] = Field(default_factory=list)
    invites: List[str] = Field(default_factory=list)
