"""Ping command: reports how long a message took to reach the bot."""

from __future__ import annotations

import time
from typing import Callable, List

from ..plugin_base import BotPlugin, Reply


def human_readable_duration(millis: int) -> str:
    """Format a duration in milliseconds, e.g. "2 s, 150 ms"."""
    if millis <= 1000:
        return f"{millis} ms"
    if millis <= 60000:
        return f"{millis // 1000} s, {millis % 1000} ms"
    minutes = millis // 60000
    seconds = (millis - 60000 * minutes) // 1000
    rest = millis - 60000 * minutes - 1000 * seconds
    return f"{minutes} min, {seconds} s, {rest} ms"


class PingCommands(BotPlugin):
    """Replies with the delay between the server timestamp and now.

    Args:
        clock: Returns the current time in seconds since the epoch.
    """

    name = "ping"

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def commands(self) -> List[str]:
        return ["ping"]

    async def handle_command(self, command, message, user_id, room_id, server_ts):
        if command != "ping":
            return Reply()
        diff = int(self.clock() * 1000) - server_ts
        return Reply(f"{user_id}: Ping took {human_readable_duration(diff)} to arrive.")

    def help_one_line(self, command: str) -> str:
        if command == "ping":
            return "replies with the time it took the message to reach the bot"
        return ""
