"""
Конверт сообщений {type, payload} и закрытый набор входящих типов.
Всё, что не укладывается в набор, отклоняется с ProtocolError.
"""
import json
from dataclasses import dataclass
from typing import Any, Union

from .constants import (
    DRAW_ACCEPTED,
    DRAW_DECLINED,
    INIT_GAME,
    MOVE,
    OFFER_DRAW,
    PONG,
    RECONNECT_REQUEST,
    RESIGN,
)

_SQUARE_FILES = "abcdefgh"
_SQUARE_RANKS = "12345678"
_PROMOTIONS = ("q", "r", "b", "n")


class ProtocolError(ValueError):
    """Кадр не разбирается или не соответствует ни одному типу сообщения."""


@dataclass(frozen=True)
class InitGame:
    player_name: str
    type: str = INIT_GAME


@dataclass(frozen=True)
class Move:
    from_sq: str
    to_sq: str
    promotion: str | None = None
    type: str = MOVE

    @property
    def uci(self) -> str:
        return self.from_sq + self.to_sq + (self.promotion or "")

    def as_payload(self) -> dict[str, str]:
        move = {"from": self.from_sq, "to": self.to_sq}
        if self.promotion:
            move["promotion"] = self.promotion
        return move


@dataclass(frozen=True)
class Resign:
    type: str = RESIGN


@dataclass(frozen=True)
class OfferDraw:
    type: str = OFFER_DRAW


@dataclass(frozen=True)
class AcceptDraw:
    type: str = DRAW_ACCEPTED


@dataclass(frozen=True)
class DeclineDraw:
    type: str = DRAW_DECLINED


@dataclass(frozen=True)
class ReconnectRequest:
    token: str
    type: str = RECONNECT_REQUEST


@dataclass(frozen=True)
class Pong:
    type: str = PONG


InboundMessage = Union[
    InitGame, Move, Resign, OfferDraw, AcceptDraw, DeclineDraw, ReconnectRequest, Pong
]


def _square(value: Any, field: str) -> str:
    if (
        not isinstance(value, str)
        or len(value) != 2
        or value[0] not in _SQUARE_FILES
        or value[1] not in _SQUARE_RANKS
    ):
        raise ProtocolError(f"bad square in {field!r}: {value!r}")
    return value


def _parse_move(payload: dict) -> Move:
    # Старые клиенты кладут ход в payload.move
    body = payload.get("move", payload)
    if not isinstance(body, dict):
        raise ProtocolError("move payload must be an object")
    promotion = body.get("promotion")
    if promotion is not None and promotion not in _PROMOTIONS:
        raise ProtocolError(f"bad promotion: {promotion!r}")
    return Move(
        from_sq=_square(body.get("from"), "from"),
        to_sq=_square(body.get("to"), "to"),
        promotion=promotion,
    )


def _parse_init_game(payload: dict) -> InitGame:
    name = payload.get("playerName") or ""
    if not isinstance(name, str):
        raise ProtocolError("playerName must be a string")
    return InitGame(player_name=name.strip()[:64])


def _parse_reconnect(payload: dict) -> ReconnectRequest:
    token = payload.get("token")
    if not isinstance(token, str) or not token:
        raise ProtocolError("reconnect_request requires a token")
    return ReconnectRequest(token=token)


_PARSERS = {
    INIT_GAME: _parse_init_game,
    MOVE: _parse_move,
    RESIGN: lambda payload: Resign(),
    OFFER_DRAW: lambda payload: OfferDraw(),
    DRAW_ACCEPTED: lambda payload: AcceptDraw(),
    DRAW_DECLINED: lambda payload: DeclineDraw(),
    RECONNECT_REQUEST: _parse_reconnect,
    PONG: lambda payload: Pong(),
}


def parse_message(raw: str | bytes) -> InboundMessage:
    """Разбирает один кадр. Бросает ProtocolError."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("envelope must be an object")
    msg_type = data.get("type")
    parser = _PARSERS.get(msg_type)
    if parser is None:
        raise ProtocolError(f"unknown message type: {msg_type!r}")
    payload = data.get("payload")
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ProtocolError("payload must be an object")
    return parser(payload)


def envelope(msg_type: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
    return {"type": msg_type, "payload": payload if payload is not None else {}}
