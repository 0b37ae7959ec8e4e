"""Logging configuration for botvinnik.

Provides subsystem-level log file routing, secret sanitization,
and structlog + stdlib integration.

Subsystem hierarchy (stdlib dotted names, structlog wraps them):
    root              → ConsoleHandler (terminal)
      └─ botvinnik    → RotatingFileHandler → botvinnik.log (combined)
           ├─ botvinnik.bot     → RFH → bot.log
           ├─ botvinnik.matrix  → RFH → matrix.log
           └─ botvinnik.plugins → RFH → plugins.log
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict, List

import structlog

# Subsystem names, each with its own RotatingFileHandler
SUBSYSTEMS = ("bot", "matrix", "plugins")

# stdlib logger name prefix for hierarchy-based propagation
LOGGER_PREFIX = "botvinnik"

# ---------------------------------------------------------------------------
# Secret sanitization
# ---------------------------------------------------------------------------

_SECRET_PATTERNS = [
    # Access tokens passed as query parameter
    re.compile(r"(?<=access_token=)[^&\s\"']+"),
    # Bearer token values in headers
    re.compile(r"(?<=Bearer )[a-zA-Z0-9_./+=-]{8,}"),
    # Synapse-style access tokens (syt_...)
    re.compile(r"syt_[a-zA-Z0-9_]{10,}"),
]

_REDACTED = "***REDACTED***"

# Exact values to scrub (e.g. the account password), filled by setup_logging()
_known_secrets: List[str] = []


def _scrub_value(value: str) -> str:
    """Scrub secrets from a single string value."""
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    for secret in _known_secrets:
        value = value.replace(secret, _REDACTED)
    return value


def register_secret(secret: str) -> None:
    """Scrub this exact value from all future log events."""
    if secret and secret not in _known_secrets:
        _known_secrets.append(secret)


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor that scrubs access tokens and passwords.

    Walks all string values in the event dict and replaces matches
    with a redacted placeholder.
    """
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = _scrub_value(value)
        elif isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(
                _scrub_value(v) if isinstance(v, str) else v
                for v in value
            )
        elif isinstance(value, dict):
            event_dict[key] = {
                k: _scrub_value(v) if isinstance(v, str) else v
                for k, v in value.items()
            }
    return event_dict


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(config=None) -> None:
    """Configure structured logging with subsystem file handlers.

    Sets up:
    1. Root logger: ConsoleHandler
    2. "botvinnik" logger: RotatingFileHandler → logs/botvinnik.log
    3. "botvinnik.<subsystem>" loggers: individual RotatingFileHandlers

    All subsystem loggers propagate up the hierarchy, so every event
    appears in: its subsystem file + combined botvinnik.log + console.

    Args:
        config: Optional Config instance. First call (before config loads)
                logs to the console only with cache_logger_on_first_use=False.
                Second call (after config loads) uses real config, adds the
                log files and sets cache_logger_on_first_use=True.
    """
    if config is not None:
        log_dir = config.log_dir
        root_level_name = str(config.logging_level).upper()
        subsystem_levels = config.logging_subsystem_levels
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count
        cache_loggers = True
        register_secret(config.password)
    else:
        log_dir = None
        root_level_name = "INFO"
        subsystem_levels = {}
        max_bytes = 10 * 1024 * 1024  # 10 MB
        backup_count = 5
        cache_loggers = False

    root_level = getattr(logging, root_level_name, logging.INFO)

    # --- File handler setup (may fail on permissions/disk) ---
    file_handlers_ok = False
    if log_dir is not None:
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            file_handlers_ok = True
        except OSError as exc:
            # Fall back to console-only logging
            print(
                f"WARNING: Cannot create log directory {log_dir}: {exc}. "
                "Falling back to console-only logging.",
                file=sys.stderr,
            )

    # Shared formatter for file output (structured, no ANSI colors)
    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    # 1. Root logger: console only
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers filter by level
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(root_level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    )
    root_logger.addHandler(console_handler)

    # 2. "botvinnik" parent logger: combined log file
    bvn_logger = logging.getLogger(LOGGER_PREFIX)
    bvn_logger.setLevel(logging.DEBUG)
    bvn_logger.handlers.clear()
    bvn_logger.propagate = True  # → root → console

    if file_handlers_ok:
        combined_handler = logging.handlers.RotatingFileHandler(
            Path(log_dir) / "botvinnik.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        combined_handler.setLevel(root_level)
        combined_handler.setFormatter(file_formatter)
        bvn_logger.addHandler(combined_handler)

    # 3. Per-subsystem loggers: individual log files
    for subsystem in SUBSYSTEMS:
        sub_logger = logging.getLogger(f"{LOGGER_PREFIX}.{subsystem}")
        sub_level_name = str(subsystem_levels.get(subsystem, "")).upper()
        sub_level = getattr(logging, sub_level_name, root_level) if sub_level_name else root_level
        sub_logger.setLevel(sub_level)
        sub_logger.handlers.clear()
        sub_logger.propagate = True  # → "botvinnik" → root

        if file_handlers_ok:
            sub_handler = logging.handlers.RotatingFileHandler(
                Path(log_dir) / f"{subsystem}.log",
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            sub_handler.setLevel(sub_level)
            sub_handler.setFormatter(file_formatter)
            sub_logger.addHandler(sub_handler)

    # --- structlog configuration ---
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=cache_loggers,
    )
