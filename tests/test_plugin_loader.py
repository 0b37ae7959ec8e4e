"""Tests for plugin discovery, allowlist and lifecycle."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from botvinnik.commands.base import CommandRegistry
from botvinnik.exceptions import RegistrationError
from botvinnik.plugin_base import BotPlugin, PluginContext, Reply
from botvinnik.plugin_loader import PluginLoader

ECHO_PLUGIN = (
    "from botvinnik.plugin_base import BotPlugin, Reply\n"
    "class EchoPlugin(BotPlugin):\n"
    "    name = 'echo'\n"
    "    version = '2.1'\n"
    "    def __init__(self, ctx):\n"
    "        self.ctx = ctx\n"
    "    def commands(self):\n"
    "        return [self.ctx.get_config('command', 'echo')]\n"
    "    async def handle_command(self, command, message, user_id, room_id, server_ts):\n"
    "        return Reply(message[len(command):].strip())\n"
)


def _make_loader(settings=None, plugins_dir=None, send_message=None):
    """Create a PluginLoader with test defaults."""
    return PluginLoader(
        plugins_dir=plugins_dir or Path("/tmp/test_plugins"),
        settings=settings or {},
        send_message=send_message or AsyncMock(return_value=True),
        data_dir=Path("/tmp/test_data"),
    )


def _write_plugin(root, name, source=ECHO_PLUGIN):
    plugin_dir = root / name
    plugin_dir.mkdir()
    (plugin_dir / "plugin.py").write_text(source)
    return plugin_dir


def test_plugin_allowlist_blocks_unlisted_plugin(tmp_path):
    """Plugins not in allowlist should be skipped."""
    _write_plugin(tmp_path, "evil_plugin")
    registry = CommandRegistry()

    loader = _make_loader(
        settings={"plugin_allowlist": ["safe_plugin"]},
        plugins_dir=tmp_path,
    )
    loader.discover_and_load(registry)

    assert loader.plugins == []
    assert len(registry) == 0


def test_plugin_allowlist_allows_listed_plugin(tmp_path):
    _write_plugin(tmp_path, "safe_plugin")
    registry = CommandRegistry()

    loader = _make_loader(
        settings={"plugin_allowlist": ["safe_plugin"]},
        plugins_dir=tmp_path,
    )
    loader.discover_and_load(registry)

    assert len(loader.plugins) == 1
    assert registry.lookup("echo") is loader.plugins[0]


@pytest.mark.asyncio
async def test_loaded_plugin_handles_commands(tmp_path):
    _write_plugin(tmp_path, "echo_plugin")
    registry = CommandRegistry()
    loader = _make_loader(plugins_dir=tmp_path)

    loader.discover_and_load(registry)

    reply = await registry.lookup("echo").handle_command(
        "echo", "echo hello there", "@a:x.org", "!r:x.org", 0
    )
    assert reply == Reply("hello there")


def test_plugin_reads_its_own_config_section(tmp_path):
    _write_plugin(tmp_path, "echo_plugin")
    registry = CommandRegistry()
    loader = _make_loader(
        settings={"plugins": {"echo_plugin": {"command": "say"}}},
        plugins_dir=tmp_path,
    )

    loader.discover_and_load(registry)

    assert "say" in registry
    assert "echo" not in registry
    assert loader.plugins[0].ctx.data_dir == Path("/tmp/test_data/echo_plugin")


def test_disabled_plugin_is_skipped(tmp_path):
    _write_plugin(tmp_path, "echo_plugin")
    registry = CommandRegistry()
    loader = _make_loader(
        settings={"plugins": {"echo_plugin": {"enabled": False}}},
        plugins_dir=tmp_path,
    )

    loader.discover_and_load(registry)

    assert loader.plugins == []


def test_conflicting_plugin_aborts_loading(tmp_path):
    _write_plugin(tmp_path, "a_first")
    _write_plugin(tmp_path, "b_second")
    registry = CommandRegistry()
    loader = _make_loader(plugins_dir=tmp_path)

    with pytest.raises(RegistrationError) as exc_info:
        loader.discover_and_load(registry)

    assert exc_info.value.context["plugin"] == "b_second"
    assert [p.ctx.plugin_name for p in loader.plugins] == ["a_first"]
    assert registry.lookup("echo") is loader.plugins[0]


def test_plugin_without_commands_aborts_loading(tmp_path):
    _write_plugin(tmp_path, "silent", ECHO_PLUGIN.replace(
        "return [self.ctx.get_config('command', 'echo')]", "return []"
    ))
    registry = CommandRegistry()
    loader = _make_loader(plugins_dir=tmp_path)

    with pytest.raises(RegistrationError):
        loader.discover_and_load(registry)

    assert loader.plugins == []
    assert len(registry) == 0


def test_broken_plugin_does_not_stop_loading(tmp_path):
    _write_plugin(tmp_path, "a_broken", "def oops(:\n")
    _write_plugin(tmp_path, "b_raises", "raise RuntimeError('import time failure')\n")
    _write_plugin(tmp_path, "c_empty", "VALUE = 1\n")
    _write_plugin(tmp_path, "d_echo")
    registry = CommandRegistry()
    loader = _make_loader(plugins_dir=tmp_path)

    loader.discover_and_load(registry)

    assert [p.ctx.plugin_name for p in loader.plugins] == ["d_echo"]


def test_plugin_no_allowlist_and_no_dir(tmp_path):
    """A missing plugins directory is not an error."""
    registry = CommandRegistry()
    loader = _make_loader(plugins_dir=tmp_path / "missing")
    loader.discover_and_load(registry)
    assert loader.plugins == []


class _LifecyclePlugin(BotPlugin):
    def __init__(self, name, events, fail=False):
        self.name = name
        self.events = events
        self.fail = fail

    def commands(self):
        return [self.name]

    async def handle_command(self, command, message, user_id, room_id, server_ts):
        return Reply()

    async def on_start(self):
        self.events.append(("start", self.name))
        if self.fail:
            raise RuntimeError("start failed")

    async def on_stop(self):
        self.events.append(("stop", self.name))
        if self.fail:
            raise RuntimeError("stop failed")


@pytest.mark.asyncio
async def test_lifecycle_hooks_isolate_failures():
    events = []
    loader = _make_loader()
    loader.plugins = [
        _LifecyclePlugin("one", events, fail=True),
        _LifecyclePlugin("two", events),
    ]

    await loader.start_all()
    await loader.stop_all()

    assert events == [
        ("start", "one"), ("start", "two"),
        ("stop", "two"), ("stop", "one"),
    ]


@pytest.mark.asyncio
async def test_plugin_context_sends_through_callback():
    send = AsyncMock(return_value=True)
    ctx = PluginContext(
        plugin_name="weather",
        send_message=send,
        settings={"plugins": {"weather": {"units": "metric"}, "other": {"x": 1}}},
        data_dir=Path("/tmp/data/weather"),
    )

    assert ctx.get_config("units") == "metric"
    assert ctx.get_config("x") is None
    assert ctx.enabled is True
    assert await ctx.send_message("!r:x.org", Reply("hi")) is True
    send.assert_awaited_once_with("!r:x.org", Reply("hi"))
