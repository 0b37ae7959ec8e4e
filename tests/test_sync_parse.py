"""Tests for /sync response parsing."""

import pytest

from botvinnik.exceptions import MatrixRequestError
from botvinnik.matrix.sync import parse_sync_response


def _message(body, msgtype="m.text", sender="@alice:example.org", ts=1700000000000):
    return {
        "type": "m.room.message",
        "sender": sender,
        "origin_server_ts": ts,
        "event_id": "$" + body.replace(" ", "_"),
        "content": {"msgtype": msgtype, "body": body},
    }


def _response(join=None, invite=None, next_batch="s72595_4483_1934"):
    rooms = {}
    if join is not None:
        rooms["join"] = {
            room_id: {"timeline": {"events": events}}
            for room_id, events in join.items()
        }
    if invite is not None:
        rooms["invite"] = {room_id: {"invite_state": {"events": []}} for room_id in invite}
    return {"next_batch": next_batch, "rooms": rooms}


def test_text_messages_and_invites_are_extracted():
    result = parse_sync_response(_response(
        join={"!a:example.org": [_message("!ping"), _message("hello")]},
        invite=["!b:example.org"],
    ))
    assert result.next_batch == "s72595_4483_1934"
    assert [r.room_id for r in result.rooms] == ["!a:example.org"]
    assert [t.body for t in result.rooms[0].texts] == ["!ping", "hello"]
    assert result.rooms[0].texts[0].sender == "@alice:example.org"
    assert result.rooms[0].texts[0].server_ts == 1700000000000
    assert result.invites == ["!b:example.org"]


def test_room_order_is_preserved():
    result = parse_sync_response(_response(join={
        "!z:example.org": [_message("one")],
        "!a:example.org": [_message("two")],
        "!m:example.org": [_message("three")],
    }))
    assert [r.room_id for r in result.rooms] == [
        "!z:example.org", "!a:example.org", "!m:example.org",
    ]


def test_non_text_messages_are_ignored():
    events = [
        _message("a notice", msgtype="m.notice"),
        _message("image.png", msgtype="m.image"),
        {"type": "m.room.name", "sender": "@alice:example.org",
         "origin_server_ts": 1, "content": {"name": "Room"}},
        _message("!ping"),
    ]
    result = parse_sync_response(_response(join={"!a:example.org": events}))
    assert [t.body for t in result.rooms[0].texts] == ["!ping"]


def test_html_fields_are_kept():
    event = _message("**bold**")
    event["content"]["format"] = "org.matrix.custom.html"
    event["content"]["formatted_body"] = "<strong>bold</strong>"
    result = parse_sync_response(_response(join={"!a:example.org": [event]}))
    msg = result.rooms[0].texts[0]
    assert msg.format == "org.matrix.custom.html"
    assert msg.formatted_body == "<strong>bold</strong>"


def test_malformed_event_is_skipped():
    broken = _message("!broken")
    del broken["sender"]
    bad_ts = _message("!bad_ts")
    bad_ts["origin_server_ts"] = "yesterday"
    result = parse_sync_response(_response(
        join={"!a:example.org": [broken, bad_ts, _message("!fine")]}
    ))
    assert [t.body for t in result.rooms[0].texts] == ["!fine"]


def test_room_without_timeline_has_no_texts():
    data = {"next_batch": "b1", "rooms": {"join": {"!a:example.org": {}}}}
    result = parse_sync_response(data)
    assert result.rooms[0].room_id == "!a:example.org"
    assert result.rooms[0].texts == []


def test_response_without_rooms():
    result = parse_sync_response({"next_batch": "b2"})
    assert result.next_batch == "b2"
    assert result.rooms == []
    assert result.invites == []


@pytest.mark.parametrize("data", [
    {},
    {"next_batch": ""},
    {"next_batch": 17},
    ["not", "an", "object"],
])
def test_missing_next_batch_is_an_error(data):
    with pytest.raises(MatrixRequestError):
        parse_sync_response(data)
