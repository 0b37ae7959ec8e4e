"""Custom exception hierarchy for botvinnik.

Provides error classification for the bot engine, the Matrix client and
the configuration layer, so callers can tell startup problems (fatal)
from transient homeserver trouble (recorded and retried by the sync
loop).
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying (timeout, 5xx, rate limit)
    PERMANENT = "permanent"          # Not worth retrying (bad registration, auth)
    INFRASTRUCTURE = "infrastructure"  # Config missing, environment issues


class BotvinnikError(Exception):
    """Base exception for all botvinnik errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "matrix.client").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(BotvinnikError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


# ---------------------------------------------------------------------------
# Engine exceptions
# ---------------------------------------------------------------------------

class RegistrationError(BotvinnikError):
    """A command could not be registered or deactivated.

    Attributes:
        command: The command token involved (if known).
    """

    def __init__(
        self,
        message: str = "",
        *,
        command: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command = command
        super().__init__(
            message, category=category, module=module or "commands", **context
        )


class StartupError(BotvinnikError):
    """The bot refused to start or could not reach the running state."""

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "bot", **context
        )


# ---------------------------------------------------------------------------
# Matrix client exceptions
# ---------------------------------------------------------------------------

class MatrixRequestError(BotvinnikError):
    """A request to the Matrix homeserver failed.

    Attributes:
        status: HTTP status code (None for connection-level failures).
        errcode: Matrix error code from the response body, e.g. "M_FORBIDDEN".
    """

    def __init__(
        self,
        message: str = "",
        *,
        status: Optional[int] = None,
        errcode: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.status = status
        self.errcode = errcode
        super().__init__(
            message, category=category, module=module or "matrix.client", **context
        )
