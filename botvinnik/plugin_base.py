"""Plugin base class and types for botvinnik extensibility."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Protocol

import structlog


@dataclass
class Reply:
    """A message to send to a Matrix room.

    Attributes:
        body: Plain text version. An empty body means "send nothing".
        formatted_body: Optional HTML version (org.matrix.custom.html).
    """
    body: str = ""
    formatted_body: str = ""

    def __bool__(self) -> bool:
        return bool(self.body)


class EngineControl(Protocol):
    """Administrative capability handed to the core plugin only."""

    def request_stop(self, user_id: str) -> bool:
        """Ask the engine to stop after the current sync iteration.

        Returns False (and does not stop) when the user is not allowed
        to stop the bot.
        """
        ...


class PluginContext:
    """Interface exposed to loaded plugins for interacting with the bot.

    Plugins receive this in their constructor. They should never
    import bot.py directly.
    """

    def __init__(
        self,
        plugin_name: str,
        send_message: Callable[[str, Reply], Awaitable[bool]],
        settings: dict,
        data_dir: Path,
    ):
        self.plugin_name = plugin_name
        self._send_message = send_message
        # Only expose the plugin's own config section, not full settings
        plugins = settings.get("plugins") or {}
        self._plugin_settings = plugins.get(plugin_name) or {}
        self.data_dir = data_dir
        self.logger = structlog.get_logger("botvinnik.plugins").bind(
            plugin=plugin_name
        )

    def get_config(self, key: str, default: Any = None) -> Any:
        """Read a value from plugins.<plugin_name>.<key> in settings.yaml."""
        return self._plugin_settings.get(key, default)

    def get_env(self, key: str) -> Optional[str]:
        """Read an environment variable."""
        return os.environ.get(key)

    @property
    def enabled(self) -> bool:
        """Whether this plugin is enabled in config (default True)."""
        return self._plugin_settings.get("enabled", True)

    async def send_message(self, room_id: str, reply: Reply) -> bool:
        """Send a message to a Matrix room."""
        return await self._send_message(room_id, reply)


class BotPlugin:
    """Base class for all command plugins.

    Subclass this and override the methods you need. ``commands()`` and
    ``handle_command()`` are mandatory. Loadable plugins live in
    ``plugins/<name>/plugin.py`` and take a PluginContext.
    """

    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    def commands(self) -> List[str]:
        """Return the command tokens served by this plugin."""
        raise NotImplementedError

    async def handle_command(
        self,
        command: str,
        message: str,
        user_id: str,
        room_id: str,
        server_ts: int,
    ) -> Reply:
        """React to a command.

        Args:
            command: The command token, without prefix.
            message: Complete text after the prefix, starting with the
                command token.
            user_id: Matrix id of the sender.
            room_id: Room the message was sent in.
            server_ts: Server timestamp of the message in milliseconds.

        Returns:
            The reply to send. An empty body sends nothing.
        """
        raise NotImplementedError

    def help_one_line(self, command: str) -> str:
        """Short help for a command, or an empty string if unknown."""
        return ""

    def help_extended(self, command: str, prefix: str) -> Reply:
        """Long help for a command, or an empty Reply if there is none."""
        return Reply()

    def allow_deactivation(self, command: str) -> bool:
        """Whether the command may be deactivated through the configuration."""
        return True

    async def on_start(self) -> None:
        """Called after the bot reached the running state."""
        pass

    async def on_stop(self) -> None:
        """Called during shutdown. Clean up resources."""
        pass
