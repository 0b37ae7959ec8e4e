"""Parsing of /sync responses into SyncResult models.

Only the parts the bot acts on are extracted: text messages of joined
rooms and the ids of rooms the bot was invited to. Malformed events are
skipped with a warning so one broken event cannot stall the sync loop.
"""

from typing import Any, Dict, List

import structlog
from pydantic import ValidationError

from ..exceptions import MatrixRequestError
from .models import MessageEvent, RoomEvents, SyncResult, TextMessage

logger = structlog.get_logger("botvinnik.matrix")

MESSAGE_EVENT = "m.room.message"
TEXT_MSGTYPE = "m.text"


def parse_text_messages(room_id: str, timeline_events: List[Any]) -> RoomEvents:
    """Extract the text messages from a room's timeline events."""
    room = RoomEvents(room_id=room_id)
    for raw in timeline_events:
        if not isinstance(raw, dict) or raw.get("type") != MESSAGE_EVENT:
            continue
        content = raw.get("content")
        if not isinstance(content, dict) or content.get("msgtype") != TEXT_MSGTYPE:
            continue
        try:
            event = MessageEvent.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "malformed_event_skipped",
                room_id=room_id,
                event_id=raw.get("event_id"),
                errors=e.error_count(),
            )
            continue
        room.texts.append(TextMessage(
            sender=event.sender,
            server_ts=event.origin_server_ts,
            body=event.content.body,
            format=event.content.format,
            formatted_body=event.content.formatted_body,
            event_id=event.event_id,
        ))
    return room


def parse_sync_response(data: Dict[str, Any]) -> SyncResult:
    """Turn a decoded /sync response into a SyncResult.

    Raises:
        MatrixRequestError: if the response carries no next_batch token.
    """
    if not isinstance(data, dict):
        raise MatrixRequestError("Sync response is not a JSON object.")
    next_batch = data.get("next_batch")
    if not isinstance(next_batch, str) or not next_batch:
        raise MatrixRequestError("Sync response contains no next_batch token.")

    rooms = data.get("rooms")
    if not isinstance(rooms, dict):
        # Nothing happened in any room since the last sync.
        return SyncResult(next_batch=next_batch)

    joined: List[RoomEvents] = []
    join = rooms.get("join")
    if isinstance(join, dict):
        for room_id, room_data in join.items():
            if not isinstance(room_data, dict):
                logger.warning("malformed_room_skipped", room_id=room_id)
                continue
            timeline = room_data.get("timeline") or {}
            events = timeline.get("events") if isinstance(timeline, dict) else None
            if not isinstance(events, list):
                events = []
            joined.append(parse_text_messages(room_id, events))

    invites: List[str] = []
    invite = rooms.get("invite")
    if isinstance(invite, dict):
        invites = list(invite.keys())

    return SyncResult(next_batch=next_batch, rooms=joined, invites=invites)
