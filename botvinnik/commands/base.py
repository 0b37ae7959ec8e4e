"""Command registry for the bot engine.

Maps command tokens to the plugins that serve them. Registration and
deactivation happen once during startup; the registry is frozen when
the sync loop starts and only read afterwards.

Key classes:
    CommandRegistry: token -> BotPlugin mapping with uniqueness and
        deactivation rules.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from ..exceptions import RegistrationError
from ..plugin_base import BotPlugin

logger = structlog.get_logger("botvinnik.bot")


class CommandRegistry:
    """Maps command tokens to plugin handlers.

    Every token maps to at most one plugin and tokens are never empty.
    A registration either inserts all of a plugin's tokens or none.
    """

    def __init__(self):
        self._handlers: Dict[str, BotPlugin] = {}
        self._frozen = False

    def register(
        self, handler: BotPlugin, tokens: Optional[Iterable[str]] = None
    ) -> bool:
        """Register a plugin for its command tokens.

        Args:
            handler: Plugin that will handle the commands.
            tokens: Command tokens to register. Defaults to
                ``handler.commands()``.

        Returns:
            True if all tokens were registered, False if nothing was
            registered because the token list is empty, contains an
            empty or repeated token, or clashes with a registered command.
        """
        if self._frozen:
            raise RegistrationError(
                "Commands cannot be registered while the bot is running."
            )
        plugin = type(handler).__name__
        token_list: List[str] = list(
            handler.commands() if tokens is None else tokens
        )
        if not token_list:
            logger.error("command_registration_rejected", plugin=plugin,
                         reason="no_commands")
            return False

        seen = set()
        for token in token_list:
            if not token:
                logger.error("command_registration_rejected", plugin=plugin,
                             reason="empty_command")
                return False
            if token in self._handlers or token in seen:
                logger.error("command_registration_rejected", plugin=plugin,
                             reason="duplicate_command", command=token)
                return False
            seen.add(token)

        for token in token_list:
            self._handlers[token] = handler
        logger.debug("commands_registered", plugin=plugin, commands=token_list)
        return True

    def deactivate(self, token: str) -> bool:
        """Remove a command so that the bot no longer handles it.

        Returns:
            True if the command was removed. False if it is not
            registered or its plugin refuses deactivation.

        Raises:
            RegistrationError: if called after the registry was frozen.
        """
        if self._frozen:
            raise RegistrationError(
                "Commands cannot be deactivated while the bot is running.",
                command=token,
            )
        handler = self._handlers.get(token) if token else None
        if handler is None:
            logger.error("command_deactivation_rejected", command=token,
                         reason="not_registered")
            return False
        if not handler.allow_deactivation(token):
            logger.error("command_deactivation_rejected", command=token,
                         reason="protected")
            return False
        del self._handlers[token]
        logger.info("command_deactivated", command=token)
        return True

    def lookup(self, token: str) -> Optional[BotPlugin]:
        """Look up the plugin for a command token."""
        return self._handlers.get(token)

    def freeze(self) -> None:
        """Disallow further registration and deactivation."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def command_names(self) -> frozenset:
        """All registered command tokens."""
        return frozenset(self._handlers.keys())

    def items(self) -> List[Tuple[str, BotPlugin]]:
        """Registered (token, plugin) pairs, sorted by token."""
        return sorted(self._handlers.items(), key=lambda item: item[0])

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, token: object) -> bool:
        return token in self._handlers
