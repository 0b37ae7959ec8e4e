"""Test doubles: an in-memory Matrix client and config factory."""

from pathlib import Path
from typing import Dict, List, Optional

from botvinnik.config import Config
from botvinnik.matrix.models import RoomEvents, SyncResult, TextMessage
from botvinnik.plugin_base import Reply

BOT_USER = "@bot:example.org"
ADMIN = "@admin:example.org"


class FakeMatrixClient:
    """Records every call and answers from preset results.

    ``sync_results`` is consumed front to back; once it is empty every
    further sync fails (returns None).
    """

    def __init__(self, user_id: str = BOT_USER):
        self.user_id = user_id
        self.calls: List[tuple] = []
        self.sync_results: List[Optional[SyncResult]] = []
        self.login_result = True
        self.logout_result = True
        self.send_result = True
        self.join_result = True
        self.leave_result = True
        self.forget_result = True
        self.encryption: Dict[str, Optional[str]] = {}
        self.joined: Optional[List[str]] = []
        self.sent: List[tuple] = []
        self.closed = False

    async def login(self):
        self.calls.append(("login",))
        return self.login_result

    async def logout(self):
        self.calls.append(("logout",))
        return self.logout_result

    async def close(self):
        self.closed = True

    async def sync(self, since=""):
        self.calls.append(("sync", since))
        if self.sync_results:
            return self.sync_results.pop(0)
        return None

    async def send_message(self, room_id: str, reply: Reply):
        self.calls.append(("send_message", room_id))
        self.sent.append((room_id, reply))
        return self.send_result

    async def join_room(self, room_id):
        self.calls.append(("join_room", room_id))
        return self.join_result

    async def leave_room(self, room_id):
        self.calls.append(("leave_room", room_id))
        return self.leave_result

    async def forget_room(self, room_id):
        self.calls.append(("forget_room", room_id))
        return self.forget_result

    async def joined_rooms(self):
        self.calls.append(("joined_rooms",))
        return self.joined

    async def encryption_algorithm(self, room_id):
        self.calls.append(("encryption_algorithm", room_id))
        return self.encryption.get(room_id, "")

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def sync_cursors(self) -> List[str]:
        return [c[1] for c in self.calls if c[0] == "sync"]


def make_config(
    allowed_failures: int = 24,
    prefix: str = "!",
    admin_users=(ADMIN,),
    deactivated=(),
    config_dir: Path = Path("/tmp/botvinnik-test-config"),
) -> Config:
    """Build a Config without touching the file system."""
    config = Config.__new__(Config)
    config.config_dir = config_dir
    config.settings = {
        "matrix": {
            "homeserver": "https://matrix.example.org",
            "user_id": BOT_USER,
            "password": "hunter22",
        },
        "command": {"prefix": prefix, "deactivated": list(deactivated)},
        "admin_users": list(admin_users),
        "sync": {"allowed_failures": allowed_failures, "delay": 0},
    }
    return config


def text(body: str, sender: str = "@alice:example.org", ts: int = 1000) -> TextMessage:
    return TextMessage(sender=sender, server_ts=ts, body=body)


def sync_result(batch: str, rooms=None, invites=None) -> SyncResult:
    """SyncResult from {room_id: [TextMessage, ...]} and invite ids."""
    return SyncResult(
        next_batch=batch,
        rooms=[
            RoomEvents(room_id=room_id, texts=list(texts))
            for room_id, texts in (rooms or {}).items()
        ],
        invites=list(invites or []),
    )
