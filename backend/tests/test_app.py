import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from duelchess import config as config_module
from duelchess.config import Config, ConfigError
from duelchess.main import create_app


@pytest.fixture
def client():
    app = create_app(Config(token_secret="test-secret", allowed_origins=("https://chess.example",)))
    with TestClient(app) as c:
        yield c


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_two_clients_get_paired(client):
    headers = {"origin": "https://chess.example"}
    with client.websocket_connect("/ws", headers=headers) as white, \
            client.websocket_connect("/ws", headers=headers) as black:
        assert white.receive_json()["type"] == "connection_established"
        assert black.receive_json()["type"] == "connection_established"
        white.send_json({"type": "init_game", "payload": {"playerName": "Alice"}})
        black.send_json({"type": "init_game", "payload": {"playerName": "Bob"}})

        assert white.receive_json() == {
            "type": "init_game", "payload": {"color": "white", "opponentName": "Bob"},
        }
        assert white.receive_json()["type"] == "reconnection_token"
        assert black.receive_json()["payload"]["color"] == "black"
        assert black.receive_json()["type"] == "reconnection_token"

        white.send_json({"type": "move", "payload": {"from": "e2", "to": "e4"}})
        update = black.receive_json()
        assert update["type"] == "update_board"
        assert update["payload"]["move"] == {"from": "e2", "to": "e4"}

        assert client.get("/status").json()["active_sessions"] == 1


def test_foreign_origin_is_rejected_at_handshake(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws", headers={"origin": "https://evil.example"}):
            pass
    assert exc.value.code == 4003


def test_missing_secret_refuses_to_start(monkeypatch):
    monkeypatch.delenv("RECONNECT_TOKEN_SECRET", raising=False)
    config_module.get_config.cache_clear()
    try:
        with pytest.raises(ConfigError):
            create_app()
    finally:
        config_module.get_config.cache_clear()
