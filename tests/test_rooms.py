"""Tests for the invite / encryption room policy."""

import pytest

from helpers import FakeMatrixClient

from botvinnik.rooms import UNDETERMINED_MESSAGE, RoomLifecycleManager

ROOM = "!r:example.org"


@pytest.fixture
def manager(fake_client):
    return RoomLifecycleManager(fake_client)


@pytest.mark.asyncio
async def test_encrypted_room_is_left_with_explanation(manager, fake_client):
    fake_client.encryption[ROOM] = "m.megolm.v1.aes-sha2"

    assert await manager.on_invite(ROOM) is False

    assert fake_client.calls == [
        ("join_room", ROOM),
        ("encryption_algorithm", ROOM),
        ("send_message", ROOM),
        ("leave_room", ROOM),
        ("forget_room", ROOM),
    ]
    reply = fake_client.sent[0][1]
    assert "m.megolm.v1.aes-sha2" in reply.body
    assert "<code>m.megolm.v1.aes-sha2</code>" in reply.formatted_body


@pytest.mark.asyncio
async def test_unencrypted_room_is_kept(manager, fake_client):
    assert await manager.on_invite(ROOM) is True

    assert fake_client.call_names() == ["join_room", "encryption_algorithm"]
    assert fake_client.sent == []


@pytest.mark.asyncio
async def test_undetermined_encryption_leaves_room(manager, fake_client):
    fake_client.encryption[ROOM] = None

    assert await manager.on_invite(ROOM) is False

    assert fake_client.sent[0][1].body == UNDETERMINED_MESSAGE
    assert ("leave_room", ROOM) in fake_client.calls


@pytest.mark.asyncio
async def test_failed_join_does_nothing_else(manager, fake_client):
    fake_client.join_result = False

    assert await manager.on_invite(ROOM) is False

    assert fake_client.call_names() == ["join_room"]


@pytest.mark.asyncio
async def test_room_is_left_even_if_notice_fails(manager, fake_client):
    fake_client.encryption[ROOM] = "m.megolm.v1.aes-sha2"
    fake_client.send_result = False

    await manager.on_invite(ROOM)

    assert ("leave_room", ROOM) in fake_client.calls
    assert ("forget_room", ROOM) in fake_client.calls


@pytest.mark.asyncio
async def test_room_is_not_forgotten_if_leave_fails():
    client = FakeMatrixClient()
    client.encryption[ROOM] = "m.megolm.v1.aes-sha2"
    client.leave_result = False

    await RoomLifecycleManager(client).on_invite(ROOM)

    assert client.call_names()[-1] == "leave_room"
