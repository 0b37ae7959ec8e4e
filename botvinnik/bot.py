"""Matrix bot engine for botvinnik.

Logs in to the homeserver, polls /sync in a loop, dispatches prefixed
text commands through the command registry and hands room invites to
the room lifecycle policy. Sync failures are tolerated until too many
of the most recent requests failed, then the bot logs out and stops.

Key classes:
    MatrixBot: Owns the registry, the transport and the sync loop.
    BotControl: EngineControl capability handed to the core plugin.
    EngineState: NOT_STARTED -> RUNNING -> STOPPED.

Key functions:
    parse_command: Split a message body into command token and text.
"""

import asyncio
import re
from enum import Enum
from typing import Callable, List, Optional, Tuple

import structlog

from .commands.base import CommandRegistry
from .commands.core import CoreCommands
from .commands.help import HelpCommands
from .commands.ping import PingCommands
from .commands.rooms import RoomCommands
from .config import Config
from .exceptions import RegistrationError, StartupError
from .failure_window import FailureWindow
from .matrix.client import MatrixClient
from .matrix.models import RoomEvents, TextMessage
from .plugin_base import BotPlugin, Reply
from .plugin_loader import PluginLoader
from .rooms import RoomLifecycleManager

logger = structlog.get_logger("botvinnik.bot")

# The command token ends at the first whitespace character of any kind.
_TOKEN_RE = re.compile(r"\S*")


class EngineState(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


def parse_command(body: str, prefix: str) -> Optional[Tuple[str, str]]:
    """Extract the command token from a message body.

    Returns:
        (token, text) where text is everything after the prefix, starting
        with the token. None if the body does not start with the prefix
        or no token follows it directly.
    """
    if not prefix or not body.startswith(prefix):
        return None
    text = body[len(prefix):]
    token = _TOKEN_RE.match(text).group(0)
    if not token:
        return None
    return token, text


class BotControl:
    """Lets the core plugin stop the bot, for administrators only."""

    def __init__(self, bot: "MatrixBot", is_admin: Callable[[str], bool]):
        self._bot = bot
        self._is_admin = is_admin

    def request_stop(self, user_id: str) -> bool:
        if not self._is_admin(user_id):
            logger.warning("stop_request_denied", user_id=user_id)
            return False
        logger.info("stop_requested", user_id=user_id)
        self._bot.stop()
        return True


class MatrixBot:
    """Command bot bound to one Matrix account.

    Registration (setup(), register_plugin(), deactivate_command()) must
    happen before run(). Once running, the registry is frozen and the
    bot only reads it.

    Args:
        config: Loaded configuration.
        client: Matrix transport. Built from the config if omitted.
        registry: Command registry. A new one is created if omitted.
        plugin_loader: Loader for external plugins (optional).
    """

    def __init__(
        self,
        config: Config,
        client: Optional[MatrixClient] = None,
        registry: Optional[CommandRegistry] = None,
        plugin_loader: Optional[PluginLoader] = None,
    ):
        self.config = config
        self.client = client or MatrixClient(
            homeserver=config.homeserver,
            user_id=config.user_id,
            password=config.password,
            sync_timeout_ms=config.sync_timeout_ms,
            request_timeout=config.request_timeout,
        )
        self.registry = registry if registry is not None else CommandRegistry()
        self.plugin_loader = plugin_loader
        self.rooms = RoomLifecycleManager(self.client)
        self.prefix = config.prefix
        self.state = EngineState.NOT_STARTED
        self.failures: Optional[FailureWindow] = None
        self._next_batch = ""
        self._stop_requested = False

    # --- Registration ---

    def register_plugin(self, plugin: BotPlugin) -> bool:
        """Register a plugin's commands. See CommandRegistry.register()."""
        return self.registry.register(plugin)

    def deactivate_command(self, command: str) -> bool:
        """Deactivate a registered command. See CommandRegistry.deactivate()."""
        return self.registry.deactivate(command)

    def setup(self) -> None:
        """Register the core plugins, load external plugins and apply
        the configured command deactivations.

        Raises:
            RegistrationError: if a core plugin cannot be registered or
                a configured command cannot be deactivated.
        """
        core_plugins: List[BotPlugin] = [
            CoreCommands(
                BotControl(self, self.config.is_admin_user),
                admin_users=self.config.admin_users,
            ),
            HelpCommands(self.registry, self.prefix),
            RoomCommands(self.client, self.config.is_admin_user,
                         admin_users=self.config.admin_users),
            PingCommands(),
        ]
        for plugin in core_plugins:
            if not self.register_plugin(plugin):
                raise RegistrationError(
                    f"Could not register core plugin {type(plugin).__name__}.",
                    plugin=type(plugin).__name__,
                )

        if self.plugin_loader is not None:
            self.plugin_loader.discover_and_load(self.registry)

        for command in self.config.deactivated_commands:
            if not self.deactivate_command(command):
                raise RegistrationError(
                    f"Command '{command}' could not be deactivated. It is "
                    "either unknown or must not be deactivated.",
                    command=command,
                )

    # --- Stop handling ---

    def stop(self) -> None:
        """Request the bot to stop after the current sync iteration."""
        if not self._stop_requested:
            logger.info("bot_stop_requested")
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    @property
    def next_batch(self) -> str:
        """Current sync cursor."""
        return self._next_batch

    # --- Lifecycle ---

    async def start(self) -> None:
        """Log in and perform the initial full sync.

        Raises:
            StartupError: if no commands are registered, the login fails
                or the initial sync fails.
        """
        if self.state != EngineState.NOT_STARTED:
            raise StartupError(f"Bot cannot be started in state {self.state.value}.")
        if len(self.registry) == 0:
            logger.info("bot_not_started", reason="no_commands_registered")
            raise StartupError("No plugins / commands have been registered.")

        if not await self.client.login():
            await self.client.close()
            raise StartupError("Login on Matrix homeserver failed.")

        initial = await self.client.sync("")
        if initial is None:
            await self.client.logout()
            await self.client.close()
            raise StartupError("Initial sync request failed.")

        self._next_batch = initial.next_batch
        self.failures = FailureWindow(self.config.allowed_failures)
        self.registry.freeze()
        self.state = EngineState.RUNNING
        logger.info(
            "bot_started",
            user_id=self.client.user_id,
            commands=len(self.registry),
            allowed_failures=self.failures.limit,
        )

        if self.plugin_loader is not None:
            await self.plugin_loader.start_all()

        # Messages of the initial sync are history, pending invites are not.
        for room_id in initial.invites:
            await self.rooms.on_invite(room_id)

    async def run(self) -> bool:
        """Start the bot and run the sync loop until it stops.

        Returns:
            True if the bot stopped on request, False if it stopped
            because too many sync requests failed.

        Raises:
            StartupError: if the bot could not be started.
        """
        await self.start()
        stopped_on_request = True
        try:
            while not self._stop_requested:
                await asyncio.sleep(self.config.sync_delay)
                if not await self._sync_iteration():
                    stopped_on_request = False
                    break
            if self._stop_requested:
                logger.info("sync_loop_exit", reason="stop_requested")
        finally:
            await self._shutdown()
        return stopped_on_request

    async def _sync_iteration(self) -> bool:
        """Poll once and handle the result.

        Returns:
            False if the failure limit was exceeded, True otherwise.
        """
        result = await self.client.sync(self._next_batch)
        self.failures.record(result is not None)
        if result is None:
            logger.warning(
                "sync_failed",
                failures=self.failures.count(),
                allowed_failures=self.failures.limit,
            )
            if self.failures.tripped():
                logger.error(
                    "failure_limit_exceeded",
                    failures=self.failures.count(),
                    window=self.failures.size,
                )
                return False
            return True

        logger.debug("sync_successful", rooms=len(result.rooms),
                     invites=len(result.invites))
        self._next_batch = result.next_batch
        await self.dispatch(result.rooms)
        for room_id in result.invites:
            await self.rooms.on_invite(room_id)
        return True

    async def _shutdown(self) -> None:
        """Stop plugins, log out and release the HTTP session."""
        self.state = EngineState.STOPPED
        if self.plugin_loader is not None:
            await self.plugin_loader.stop_all()
        if not await self.client.logout():
            logger.error("logout_on_shutdown_failed")
        await self.client.close()
        logger.info("bot_stopped")

    # --- Dispatch ---

    async def dispatch(self, rooms: List[RoomEvents]) -> None:
        """Handle all text messages of the given rooms, in order."""
        for room in rooms:
            for message in room.texts:
                await self.handle_message(room.room_id, message)

    async def handle_message(self, room_id: str, message: TextMessage) -> None:
        """Run the command contained in one text message, if any."""
        if message.sender == self.client.user_id:
            return
        parsed = parse_command(message.body, self.prefix)
        if parsed is None:
            return
        command, text = parsed

        handler = self.registry.lookup(command)
        if handler is None:
            logger.info("unknown_command", command=command, room_id=room_id)
            reply = Reply(
                f"The bot does not recognize the command '{self.prefix}{command}'."
            )
        else:
            logger.info("command_received", command=command, room_id=room_id,
                        sender=message.sender)
            try:
                reply = await handler.handle_command(
                    command, text, message.sender, room_id, message.server_ts
                )
            except Exception as e:
                logger.error(
                    "command_handler_error",
                    command=command,
                    room_id=room_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return

        if reply is None or not reply.body:
            return
        if not await self.client.send_message(room_id, reply):
            logger.error("reply_send_failed", command=command, room_id=room_id)
