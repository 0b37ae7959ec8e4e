"""Help command plugin: lists commands and shows per-command help."""

from __future__ import annotations

import html
from typing import List

from ..plugin_base import BotPlugin, Reply
from .base import CommandRegistry


class HelpCommands(BotPlugin):
    """Builds help texts from whatever is in the registry at call time.

    Args:
        registry: The bot's command registry.
        prefix: Command prefix, used in the listed command names.
    """

    name = "help"

    def __init__(self, registry: CommandRegistry, prefix: str):
        self.registry = registry
        self.prefix = prefix

    def commands(self) -> List[str]:
        return ["help"]

    async def handle_command(self, command, message, user_id, room_id, server_ts):
        if command != "help":
            return Reply()
        topic = message[len(command):].strip()
        if topic.startswith(self.prefix):
            topic = topic[len(self.prefix):]
        words = topic.split()
        if not words:
            return self.overview()
        return self.command_help(words[0])

    def overview(self) -> Reply:
        """One line per registered command, sorted by name."""
        body = "The following commands are available:\n"
        formatted = "The following commands are available:<br />\n"
        for name, plugin in self.registry.items():
            line = plugin.help_one_line(name) or "no description available"
            body += f"{self.prefix}{name} - {line}\n"
            formatted += (
                f"<code>{html.escape(self.prefix + name)}</code> - "
                f"{html.escape(line)}<br />\n"
            )
        body += f"\nUse {self.prefix}help COMMAND to get more help on a command."
        formatted += (
            f"<br />\nUse <code>{html.escape(self.prefix)}help COMMAND</code> "
            "to get more help on a command."
        )
        return Reply(body, formatted)

    def command_help(self, name: str) -> Reply:
        """Extended help for a single command."""
        plugin = self.registry.lookup(name)
        if plugin is None:
            return Reply(
                f"The bot does not recognize the command '{self.prefix}{name}'."
            )
        extended = plugin.help_extended(name, self.prefix)
        if extended.body:
            return extended
        line = plugin.help_one_line(name)
        if line:
            return Reply(
                f"{self.prefix}{name} - {line}",
                f"<code>{html.escape(self.prefix + name)}</code> - {html.escape(line)}",
            )
        return Reply(f"There is no help available for {self.prefix}{name}.")

    def help_one_line(self, command: str) -> str:
        if command == "help":
            return "shows short help for available commands"
        return ""

    def help_extended(self, command: str, prefix: str) -> Reply:
        if command == "help":
            return Reply(
                f"{prefix}help - lists all available commands.\n"
                f"{prefix}help COMMAND - shows help for COMMAND, "
                f"e.g. {prefix}help ping."
            )
        return Reply()

    def allow_deactivation(self, command: str) -> bool:
        return False
