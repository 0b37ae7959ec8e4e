"""Room administration commands: rooms, leave.

Both commands are restricted to the bot's administrators.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable, List

import structlog

from ..plugin_base import BotPlugin, Reply
from .core import admin_refusal

if TYPE_CHECKING:
    from ..matrix.client import MatrixClient

logger = structlog.get_logger("botvinnik.bot")


class RoomCommands(BotPlugin):
    """Lists and leaves the bot's rooms.

    Args:
        client: Matrix transport.
        is_admin: Predicate for administrator user ids.
        admin_users: Administrators, for the refusal text.
    """

    name = "rooms"

    def __init__(
        self,
        client: "MatrixClient",
        is_admin: Callable[[str], bool],
        admin_users: Iterable[str] = (),
    ):
        self.client = client
        self.is_admin = is_admin
        self.admin_users = frozenset(admin_users)

    def commands(self) -> List[str]:
        return ["rooms", "leave"]

    async def handle_command(self, command, message, user_id, room_id, server_ts):
        if command == "rooms":
            if not self.is_admin(user_id):
                return admin_refusal(
                    user_id, "list active rooms of the bot", self.admin_users
                )
            return await self._list_rooms()
        if command == "leave":
            if not self.is_admin(user_id):
                return admin_refusal(
                    user_id, "make me leave Matrix rooms", self.admin_users
                )
            return await self._leave(message[len(command):].strip(), user_id)
        return Reply()

    async def _list_rooms(self) -> Reply:
        rooms = await self.client.joined_rooms()
        if rooms is None:
            return Reply("Error: Could not retrieve joined rooms from homeserver.")
        body = "The bot is currently member of the following rooms:"
        for joined in rooms:
            body += "\n\t" + joined
        if not rooms:
            body += "\nnone"
        elif len(rooms) == 1:
            body += "\nThat is one room only."
        else:
            body += f"\nThese are {len(rooms)} rooms in total."
        return Reply(body)

    async def _leave(self, target: str, user_id: str) -> Reply:
        if not target:
            return Reply(
                "Hint: You have to enter the Matrix room id after the leave command."
            )
        logger.info("room_leave_requested", room_id=target, user_id=user_id)
        # Notify room members; the room may be gone already, so ignore failure.
        await self.client.send_message(
            target, Reply(f"Leaving the room due to request by {user_id}.")
        )
        if not await self.client.leave_room(target):
            return Reply(
                f"Error: Could not leave the room '{target}'. Are you sure "
                "that is a proper Matrix room id?"
            )
        if not await self.client.forget_room(target):
            return Reply(
                f"Bot has left the room '{target}'. However, the call to the "
                "/forget client-server API endpoint failed."
            )
        return Reply(f"Bot has left the room {target} and has forgotten about it.")

    def help_one_line(self, command: str) -> str:
        if command == "rooms":
            return "shows the rooms where the bot is active"
        if command == "leave":
            return "forces the bot to leave the specified room"
        return ""

    def help_extended(self, command: str, prefix: str) -> Reply:
        if command == "leave":
            return Reply(
                f"{prefix}leave ROOM_ID - makes the bot leave and forget the "
                "room ROOM_ID. Only administrators may use this command."
            )
        return Reply()

    def allow_deactivation(self, command: str) -> bool:
        return False
