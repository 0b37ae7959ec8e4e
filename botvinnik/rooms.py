"""Room lifecycle policy: accept invites, leave rooms the bot cannot serve.

The bot cannot read end-to-end encrypted messages. After joining a room
it checks the room's encryption state and leaves again, with a short
explanation, whenever the room is encrypted or the state cannot be
determined.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from .plugin_base import Reply

if TYPE_CHECKING:
    from .matrix.client import MatrixClient

logger = structlog.get_logger("botvinnik.bot")

UNDETERMINED_MESSAGE = (
    "Error: Could not determine whether this room uses end-to-end "
    "encryption. The bot does not support encrypted rooms, so it will "
    "leave this room now."
)


def encrypted_room_message(algorithm: str) -> Reply:
    return Reply(
        "This room uses end-to-end encryption (" + algorithm + "). The bot "
        "does not support encrypted rooms, so it will leave this room now.",
        "This room uses end-to-end encryption (<code>" + algorithm
        + "</code>). <strong>The bot does not support encrypted rooms</strong>, "
        "so it will leave this room now.",
    )


class RoomLifecycleManager:
    """Handles invites for the bot engine.

    Args:
        client: Matrix transport used to join, query and leave rooms.
    """

    def __init__(self, client: "MatrixClient"):
        self.client = client

    async def on_invite(self, room_id: str) -> bool:
        """Join an invited room and leave it again if it cannot be served.

        Returns:
            True if the bot is a member of the room afterwards.
        """
        if not await self.client.join_room(room_id):
            logger.error("invite_join_failed", room_id=room_id)
            return False

        algorithm = await self.client.encryption_algorithm(room_id)
        if algorithm is None:
            logger.warning("room_encryption_undetermined", room_id=room_id)
            await self._explain_and_leave(room_id, Reply(UNDETERMINED_MESSAGE))
            return False
        if algorithm:
            logger.info("room_encrypted", room_id=room_id, algorithm=algorithm)
            await self._explain_and_leave(room_id, encrypted_room_message(algorithm))
            return False

        logger.info("invite_accepted", room_id=room_id)
        return True

    async def _explain_and_leave(self, room_id: str, reply: Reply) -> None:
        if not await self.client.send_message(room_id, reply):
            logger.warning("leave_notice_send_failed", room_id=room_id)
        if not await self.client.leave_room(room_id):
            logger.error("unservable_room_leave_failed", room_id=room_id)
            return
        if not await self.client.forget_room(room_id):
            logger.warning("unservable_room_forget_failed", room_id=room_id)
