"""Matrix homeserver access for botvinnik.

Provides the MatrixClient transport, the sync response parser and the
pydantic models for the events the bot consumes.
"""

from .client import MatrixClient
from .models import RoomEvents, SyncResult, TextMessage
from .sync import parse_sync_response

__all__ = [
    "MatrixClient",
    "RoomEvents",
    "SyncResult",
    "TextMessage",
    "parse_sync_response",
]
