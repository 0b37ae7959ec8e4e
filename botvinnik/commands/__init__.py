"""Command framework for the botvinnik bot.

Provides the CommandRegistry and the built-in command plugins.
"""

from .base import CommandRegistry
from .core import CoreCommands
from .help import HelpCommands
from .ping import PingCommands
from .rooms import RoomCommands

__all__ = [
    "CommandRegistry",
    "CoreCommands",
    "HelpCommands",
    "PingCommands",
    "RoomCommands",
]
