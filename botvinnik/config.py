"""Configuration management for botvinnik.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a typed Config object. Property getters provide safe access with
sensible defaults for the Matrix account, command handling, the sync
loop, logging and plugins.

Key classes:
    Config: Central configuration manager.

Key functions:
    find_config_dir: Locate a config directory when none is given.
"""

import os
from pathlib import Path
from typing import FrozenSet, List, Optional

import structlog
import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .failure_window import WINDOW_SIZE

logger = structlog.get_logger("botvinnik.bot")

SETTINGS_FILE = "settings.yaml"

DEFAULT_PREFIX = "!"
DEFAULT_ALLOWED_FAILURES = 24
DEFAULT_SYNC_DELAY = 5


def potential_config_dirs() -> List[Path]:
    """Directories searched for settings.yaml, most specific first."""
    dirs = []
    env_dir = os.environ.get("BOTVINNIK_CONFIG_DIR")
    if env_dir:
        dirs.append(Path(env_dir).expanduser())
    dirs.extend([
        Path.home() / ".botvinnik",
        Path("/etc/botvinnik"),
        Path.cwd() / "config",
    ])
    return dirs


def find_config_dir() -> Optional[Path]:
    """Return the first potential config directory holding settings.yaml."""
    for candidate in potential_config_dirs():
        try:
            if (candidate / SETTINGS_FILE).is_file():
                logger.info("config_dir_found", path=str(candidate))
                return candidate
        except OSError as e:
            logger.warning("config_dir_check_failed", path=str(candidate),
                           error=str(e))
    return None


class Config:
    """Central configuration manager for botvinnik.

    Loads settings.yaml and .env from the config directory. Provides
    typed property accessors; environment variables take precedence
    over settings.yaml for the Matrix credentials.

    Args:
        config_dir: Path to the config directory. Defaults to the first
            match of find_config_dir(), or ``./config``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = find_config_dir() or Path.cwd() / "config"
        self.config_dir = Path(config_dir)

        # Load environment variables
        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml(SETTINGS_FILE)

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if not filepath.exists():
            return {}
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Could not parse {filepath}: {e}", path=str(filepath)
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{filepath} must contain a mapping at the top level.",
                path=str(filepath),
            )
        return data

    def _section(self, name: str) -> dict:
        section = self.settings.get(name)
        return section if isinstance(section, dict) else {}

    # --- Matrix account ---

    @property
    def homeserver(self) -> str:
        """Homeserver base URL. Env var BOTVINNIK_HOMESERVER takes precedence."""
        return (
            os.environ.get("BOTVINNIK_HOMESERVER")
            or self._section("matrix").get("homeserver", "")
        )

    @property
    def user_id(self) -> str:
        """Matrix id of the bot. Env var BOTVINNIK_USER_ID takes precedence."""
        return (
            os.environ.get("BOTVINNIK_USER_ID")
            or self._section("matrix").get("user_id", "")
        )

    @property
    def password(self) -> str:
        """Account password. Env var BOTVINNIK_PASSWORD takes precedence."""
        return (
            os.environ.get("BOTVINNIK_PASSWORD")
            or str(self._section("matrix").get("password", "") or "")
        )

    @property
    def sync_timeout_ms(self) -> int:
        """Long-poll timeout for /sync in milliseconds (default 0)."""
        return self._section("matrix").get("sync_timeout_ms", 0)

    @property
    def request_timeout(self) -> float:
        """Total timeout of one homeserver request in seconds (default 60)."""
        return self._section("matrix").get("request_timeout", 60)

    # --- Commands ---

    @property
    def prefix(self) -> str:
        """Prefix that marks a message as command (default "!")."""
        prefix = self._section("command").get("prefix", DEFAULT_PREFIX)
        return "" if prefix is None else str(prefix)

    @property
    def deactivated_commands(self) -> List[str]:
        """Commands to deactivate at startup."""
        commands = self._section("command").get("deactivated", [])
        if commands is None:
            return []
        if not isinstance(commands, list):
            logger.error("deactivated_commands_invalid_type",
                         type=type(commands).__name__)
            return []
        return [str(c) for c in commands]

    @property
    def admin_users(self) -> FrozenSet[str]:
        """Matrix ids allowed to stop the bot and manage its rooms."""
        users = self.settings.get("admin_users", [])
        if not isinstance(users, list):
            logger.error("admin_users_invalid_type", type=type(users).__name__)
            return frozenset()
        return frozenset(str(u) for u in users)

    def is_admin_user(self, user_id: str) -> bool:
        """Whether the user may use administrative commands."""
        return user_id in self.admin_users

    # --- Sync loop ---

    @property
    def allowed_failures(self) -> int:
        """Failed syncs tolerated within the failure window (default 24)."""
        return self._section("sync").get("allowed_failures", DEFAULT_ALLOWED_FAILURES)

    @property
    def sync_delay(self) -> float:
        """Seconds to wait between two sync requests (default 5)."""
        return self._section("sync").get("delay", DEFAULT_SYNC_DELAY)

    # --- Logging ---

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path.cwd() / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        return self._section("logging").get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"matrix": "DEBUG"}."""
        return self._section("logging").get("subsystem_levels", {}) or {}

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        return self._section("logging").get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        return self._section("logging").get("backup_count", 5)

    # --- Plugins ---

    @property
    def plugins_dir(self) -> Path:
        """Directory scanned for loadable plugins."""
        configured = self.settings.get("plugins_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "plugins"

    @property
    def data_dir(self) -> Path:
        """Directory where plugins may keep their caches."""
        configured = self.settings.get("data_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "data"

    def validate(self) -> None:
        """Validate critical settings at startup.

        Raises:
            ConfigurationError: if the bot cannot work with these settings.
        """
        for name, value in (
            ("matrix.homeserver", self.homeserver),
            ("matrix.user_id", self.user_id),
            ("matrix.password", self.password),
        ):
            if not value:
                raise ConfigurationError(
                    f"Setting {name} is missing.", setting_name=name
                )
        if not self.homeserver.startswith(("http://", "https://")):
            raise ConfigurationError(
                "matrix.homeserver must be an http(s) URL.",
                setting_name="matrix.homeserver",
            )
        if not self.prefix:
            raise ConfigurationError(
                "The command prefix must not be empty.",
                setting_name="command.prefix",
            )

        failures = self.allowed_failures
        if isinstance(failures, bool) or not isinstance(failures, int) or failures < 0:
            raise ConfigurationError(
                "sync.allowed_failures must be a non-negative integer.",
                setting_name="sync.allowed_failures", value=failures,
            )
        if failures >= WINDOW_SIZE:
            logger.warning(
                "allowed_failures_clamped",
                configured=failures,
                effective=WINDOW_SIZE - 1,
            )

        delay = self.sync_delay
        if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
            raise ConfigurationError(
                "sync.delay must be a non-negative number of seconds.",
                setting_name="sync.delay", value=delay,
            )

        if not self.admin_users:
            logger.warning("no_admin_users",
                           msg="Nobody will be able to stop the bot via chat")

