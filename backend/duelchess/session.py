"""
Партия между двумя слотами и реестр активных партий (in-memory).
Состояния: active -> terminal(reason). Переход в terminal происходит ровно один раз.
"""
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .constants import (
    ALREADY_ENDED,
    CHECKMATE,
    DISCONNECTION,
    DRAW,
    ILLEGAL_MOVE,
    OUT_OF_TURN,
    RESIGNATION,
)
from .protocol import Move
from .validator import BLACK, WHITE, MoveValidator

logger = logging.getLogger(__name__)


class Slot(str, Enum):
    A = "A"
    B = "B"

    @property
    def color(self) -> str:
        return WHITE if self is Slot.A else BLACK

    @property
    def other(self) -> "Slot":
        return Slot.B if self is Slot.A else Slot.A

    @classmethod
    def for_color(cls, color: str) -> "Slot":
        return cls.A if color == WHITE else cls.B


@dataclass
class SlotBinding:
    connection_id: str
    display_name: str
    connected: bool = True


@dataclass
class MoveAccepted:
    move: dict[str, str]
    record: dict[str, str]
    history: list[dict[str, str]]
    fen: str
    terminal: str | None = None
    winner: str | None = None


@dataclass
class MoveRejected:
    reason: str


@dataclass
class Ended:
    reason: str
    winner: str | None = None  # цвет победителя, None — ничья


@dataclass
class Session:
    a: SlotBinding
    b: SlotBinding
    validator: MoveValidator
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    position: Any = None
    history: list[dict[str, str]] = field(default_factory=list)
    terminal: bool = False
    reason: str | None = None
    winner: str | None = None
    draw_offered_by: Slot | None = None

    def __post_init__(self) -> None:
        if self.position is None:
            self.position = self.validator.initial_position()

    @property
    def is_active(self) -> bool:
        return not self.terminal

    def binding(self, slot: Slot) -> SlotBinding:
        return self.a if slot is Slot.A else self.b

    def slot_of(self, connection_id: str) -> Slot | None:
        if self.a.connection_id == connection_id:
            return Slot.A
        if self.b.connection_id == connection_id:
            return Slot.B
        return None

    def turn_slot(self) -> Slot:
        return Slot.for_color(self.validator.side_to_move(self.position))

    def _end(self, reason: str, winner: str | None) -> Ended:
        self.terminal = True
        self.reason = reason
        self.winner = winner
        self.draw_offered_by = None
        logger.info("Session %s over: reason=%s winner=%s", self.id, reason, winner)
        return Ended(reason=reason, winner=winner)

    def apply_move(self, slot: Slot, move: Move) -> MoveAccepted | MoveRejected:
        if self.terminal:
            return MoveRejected(ALREADY_ENDED)
        if slot is not self.turn_slot():
            return MoveRejected(OUT_OF_TURN)
        result = self.validator.apply(self.position, move)
        if not result.legal:
            return MoveRejected(ILLEGAL_MOVE)
        self.position = result.position
        self.history.append(result.record)
        self.draw_offered_by = None
        if result.check and not result.terminal:
            logger.info("Session %s: %s in check", self.id, result.turn)
        if result.terminal:
            self._end(result.terminal, result.winner if result.terminal == CHECKMATE else None)
        return MoveAccepted(
            move=move.as_payload(),
            record=result.record,
            history=list(self.history),
            fen=self.validator.describe(self.position)["fen"],
            terminal=result.terminal,
            winner=self.winner,
        )

    def resign(self, slot: Slot) -> Ended | None:
        if self.terminal:
            return None
        return self._end(RESIGNATION, slot.other.color)

    def offer_draw(self, slot: Slot) -> bool:
        if self.terminal:
            return False
        self.draw_offered_by = slot
        return True

    def accept_draw(self, slot: Slot) -> Ended | None:
        # Принять можно только предложение соперника
        if self.terminal or self.draw_offered_by is not slot.other:
            return None
        return self._end(DRAW, None)

    def decline_draw(self, slot: Slot) -> bool:
        if self.terminal or self.draw_offered_by is not slot.other:
            return False
        self.draw_offered_by = None
        return True

    def forfeit_by_slot(self, slot: Slot) -> Ended | None:
        if self.terminal:
            return None
        return self._end(DISCONNECTION, slot.other.color)

    def mark_disconnected(self, slot: Slot) -> None:
        self.binding(slot).connected = False

    def rebind_slot(self, slot: Slot, connection_id: str) -> bool:
        if self.terminal:
            return False
        binding = self.binding(slot)
        binding.connection_id = connection_id
        binding.connected = True
        return True

    def snapshot(self) -> dict[str, Any]:
        """Полное состояние для повторно подключившегося клиента."""
        state = self.validator.describe(self.position)
        state.update({
            "sessionId": self.id,
            "moveHistory": list(self.history),
            "isGameOver": self.terminal,
            "reason": self.reason,
            "winner": self.winner,
        })
        return state


class SessionRegistry:
    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: Session) -> None:
        self._sessions[session.id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Session | None:
        return self._sessions.pop(session_id, None)

    def find_by_connection(self, connection_id: str) -> Session | None:
        """Активная партия, в которой connection_id занимает слот."""
        for s in self._sessions.values():
            if s.is_active and s.slot_of(connection_id) is not None:
                return s
        return None
