"""Core command plugin for the bot.

Handles: stop, version. Both commands are part of the bot itself and
cannot be deactivated.
"""

from __future__ import annotations

import html
import platform
from typing import Iterable, List

import structlog

from .. import __version__
from ..plugin_base import BotPlugin, EngineControl, Reply

logger = structlog.get_logger("botvinnik.bot")


def admin_refusal(user_id: str, action: str, admin_users: Iterable[str]) -> Reply:
    """Reply for users who tried an administrative command."""
    admins = sorted(admin_users)
    body = (
        f"You have no power here, {user_id}. Only the following users are "
        f"allowed to {action}:"
    )
    formatted = (
        f"<strong>You have no power here, {html.escape(user_id)}.</strong> "
        f"Only the following users are allowed to {html.escape(action)}:"
    )
    if not admins:
        body += "\nnobody"
        formatted += "<br />\nnobody"
    for admin in admins:
        body += "\n" + admin
        formatted += "<br />\n" + html.escape(admin)
    return Reply(body, formatted)


class CoreCommands(BotPlugin):
    """Stop and version commands.

    Args:
        control: Capability to stop the engine.
        admin_users: Users allowed to stop the bot, for the refusal text.
    """

    name = "core"

    def __init__(self, control: EngineControl, admin_users: Iterable[str] = ()):
        self.control = control
        self.admin_users = frozenset(admin_users)

    def commands(self) -> List[str]:
        return ["stop", "version"]

    async def handle_command(self, command, message, user_id, room_id, server_ts):
        if command == "stop":
            if not self.control.request_stop(user_id):
                return admin_refusal(user_id, "stop the bot", self.admin_users)
            return Reply("Stop of bot was requested. Shutdown will be initiated.")
        if command == "version":
            return Reply(
                f"botvinnik, version {__version__}\n\n"
                f"Python {platform.python_version()}",
                f"<strong>botvinnik</strong>, version {__version__}<br />\n"
                f"<br />\nPython {platform.python_version()}",
            )
        return Reply()

    def help_one_line(self, command: str) -> str:
        if command == "stop":
            return "stops the bot and initiates its shutdown"
        if command == "version":
            return "shows the version of the bot"
        return ""

    def help_extended(self, command: str, prefix: str) -> Reply:
        if command == "stop":
            return Reply(
                f"{prefix}stop - stops the bot and initiates its shutdown. "
                "Only administrators of the bot may use this command. The bot "
                "finishes the commands it has already received before it "
                "logs out."
            )
        return Reply()

    def allow_deactivation(self, command: str) -> bool:
        return False
