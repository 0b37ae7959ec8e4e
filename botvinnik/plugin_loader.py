"""Plugin discovery, loading, and lifecycle management."""

import importlib.util
import sys
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import structlog

from .commands.base import CommandRegistry
from .exceptions import RegistrationError
from .plugin_base import BotPlugin, PluginContext, Reply

logger = structlog.get_logger("botvinnik.plugins")


class PluginLoader:
    """Discovers, loads, and manages the lifecycle of external plugins.

    A plugin lives in ``<plugins_dir>/<name>/plugin.py`` and defines a
    BotPlugin subclass whose constructor takes a PluginContext.
    """

    def __init__(
        self,
        plugins_dir: Path,
        settings: dict,
        send_message: Callable[[str, Reply], Awaitable[bool]],
        data_dir: Path,
    ):
        self.plugins_dir = plugins_dir
        self._settings = settings
        self._send_message = send_message
        self._data_dir = data_dir
        self.plugins: List[BotPlugin] = []

    def discover_and_load(self, registry: CommandRegistry) -> None:
        """Scan plugins_dir for plugin.py files, load them and register
        their commands with the registry.

        Plugins that fail to import are logged and skipped.

        Raises:
            RegistrationError: if a loaded plugin has no commands, an
                empty command or a command that is already registered.
        """
        if not self.plugins_dir.is_dir():
            logger.info("plugin_loader_no_dir", path=str(self.plugins_dir))
            return

        # Plugin allowlist: if configured, only load listed plugins
        allowlist = self._settings.get("plugin_allowlist")
        if allowlist is not None and not isinstance(allowlist, list):
            logger.error("plugin_allowlist_invalid_type", type=type(allowlist).__name__)
            allowlist = None

        for plugin_dir in sorted(self.plugins_dir.iterdir()):
            if not plugin_dir.is_dir():
                continue
            plugin_file = plugin_dir / "plugin.py"
            if not plugin_file.is_file():
                continue

            plugin_name = plugin_dir.name

            if allowlist is not None and plugin_name not in allowlist:
                logger.warning(
                    "plugin_blocked_not_in_allowlist",
                    plugin=plugin_name,
                    allowlist=allowlist,
                )
                continue

            try:
                plugin = self._load_plugin(plugin_name, plugin_file)
            except Exception as e:
                logger.error(
                    "plugin_load_failed",
                    plugin=plugin_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            if plugin is None:
                continue

            if not registry.register(plugin):
                logger.error(
                    "plugin_commands_rejected",
                    plugin=plugin_name,
                    commands=plugin.commands(),
                )
                raise RegistrationError(
                    f"Commands of plugin '{plugin_name}' could not be registered.",
                    plugin=plugin_name,
                )
            self.plugins.append(plugin)
            logger.info(
                "plugin_loaded",
                plugin=plugin_name,
                version=plugin.version,
                commands=plugin.commands(),
            )

        logger.info("plugin_loader_complete", plugins_loaded=len(self.plugins))

    def _load_plugin(self, plugin_name: str, plugin_file: Path) -> Optional[BotPlugin]:
        """Import a single plugin.py and instantiate its plugin class."""
        plugins_config = self._settings.get("plugins") or {}
        plugin_config = plugins_config.get(plugin_name, {})
        if isinstance(plugin_config, dict) and plugin_config.get("enabled") is False:
            logger.info("plugin_skipped_disabled", plugin=plugin_name)
            return None

        module_name = f"botvinnik_plugins.{plugin_name}"
        spec = importlib.util.spec_from_file_location(module_name, plugin_file)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)

        plugin_cls = None
        for attr in module.__dict__.values():
            if (
                isinstance(attr, type)
                and issubclass(attr, BotPlugin)
                and attr is not BotPlugin
                and attr.__module__ == module_name
            ):
                plugin_cls = attr
                break

        if plugin_cls is None:
            logger.warning("plugin_no_class_found", plugin=plugin_name)
            return None

        ctx = PluginContext(
            plugin_name=plugin_name,
            send_message=self._send_message,
            settings=self._settings,
            data_dir=self._data_dir / plugin_name,
        )
        return plugin_cls(ctx)

    async def start_all(self) -> None:
        """Call on_start() on all loaded plugins."""
        for plugin in self.plugins:
            try:
                await plugin.on_start()
                logger.info("plugin_started", plugin=plugin.name or type(plugin).__name__)
            except Exception as e:
                logger.error(
                    "plugin_start_failed",
                    plugin=plugin.name or type(plugin).__name__,
                    error=str(e),
                )

    async def stop_all(self) -> None:
        """Call on_stop() on all loaded plugins (reverse order)."""
        for plugin in reversed(self.plugins):
            try:
                await plugin.on_stop()
                logger.info("plugin_stopped", plugin=plugin.name or type(plugin).__name__)
            except Exception as e:
                logger.error(
                    "plugin_stop_failed",
                    plugin=plugin.name or type(plugin).__name__,
                    error=str(e),
                )
