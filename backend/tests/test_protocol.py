import json

import pytest

from duelchess.protocol import (
    InitGame,
    Move,
    Pong,
    ProtocolError,
    ReconnectRequest,
    envelope,
    parse_message,
)


def frame(msg_type, payload=None):
    return json.dumps({"type": msg_type, "payload": payload})


def test_parse_move():
    msg = parse_message(frame("move", {"from": "e7", "to": "e8", "promotion": "n"}))
    assert msg == Move("e7", "e8", "n")
    assert msg.uci == "e7e8n"
    assert msg.as_payload() == {"from": "e7", "to": "e8", "promotion": "n"}


def test_parse_move_nested_form():
    msg = parse_message(frame("move", {"move": {"from": "e2", "to": "e4"}}))
    assert msg == Move("e2", "e4")


def test_parse_init_game_without_payload():
    assert parse_message(json.dumps({"type": "init_game"})) == InitGame(player_name="")


def test_parse_reconnect_and_pong():
    assert parse_message(frame("reconnect_request", {"token": "abc"})) == ReconnectRequest("abc")
    assert parse_message(frame("pong")) == Pong()


@pytest.mark.parametrize("raw", [
    "not json",
    json.dumps([1, 2]),
    frame("teleport"),
    frame("move", {"from": "z9", "to": "e4"}),
    frame("move", {"from": "e2", "to": "e4", "promotion": "k"}),
    frame("move", "e2e4"),
    frame("reconnect_request", {}),
    frame("init_game", {"playerName": 42}),
])
def test_rejects_malformed_frames(raw):
    with pytest.raises(ProtocolError):
        parse_message(raw)


def test_envelope():
    assert envelope("ping") == {"type": "ping", "payload": {}}
