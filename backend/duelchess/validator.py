"""
Валидатор ходов: внешний для ядра компонент правил.
Ядро видит позицию как непрозрачный объект; реализация по умолчанию — python-chess.
"""
from dataclasses import dataclass, field
from typing import Any, Protocol

import chess
from chess import Board

from .constants import (
    CHECKMATE,
    FIFTY_MOVE_RULE,
    INSUFFICIENT_MATERIAL,
    STALEMATE,
    THREEFOLD_REPETITION,
)
from .protocol import Move

WHITE = "white"
BLACK = "black"


@dataclass
class MoveResult:
    legal: bool
    position: Any = None
    record: dict[str, str] = field(default_factory=dict)
    turn: str | None = None  # чей ход после применения
    terminal: str | None = None  # причина окончания партии или None
    winner: str | None = None  # только для мата
    check: bool = False


class MoveValidator(Protocol):
    def initial_position(self) -> Any: ...

    def side_to_move(self, position: Any) -> str: ...

    def apply(self, position: Any, move: Move) -> MoveResult: ...

    def describe(self, position: Any) -> dict[str, Any]: ...


def _color_name(color: chess.Color) -> str:
    return WHITE if color == chess.WHITE else BLACK


def _terminal_reason(board: Board) -> str | None:
    if board.is_checkmate():
        return CHECKMATE
    if board.is_stalemate():
        return STALEMATE
    if board.is_insufficient_material():
        return INSUFFICIENT_MATERIAL
    if board.is_fifty_moves():
        return FIFTY_MOVE_RULE
    if board.is_repetition(3):
        return THREEFOLD_REPETITION
    return None


class ChessMoveValidator:
    """Стандартные шахматы. Позиция — chess.Board с полной историей ходов."""

    def __init__(self, fen: str = chess.STARTING_FEN):
        self._fen = fen

    def initial_position(self) -> Board:
        return Board(self._fen)

    def side_to_move(self, position: Board) -> str:
        return _color_name(position.turn)

    def apply(self, position: Board, move: Move) -> MoveResult:
        try:
            candidate = chess.Move.from_uci(move.uci)
        except ValueError:
            return MoveResult(legal=False)
        if candidate not in position.legal_moves:
            # Пешка на последнюю горизонталь без указания фигуры — ферзь
            promoted = chess.Move(candidate.from_square, candidate.to_square, chess.QUEEN)
            if candidate.promotion is None and promoted in position.legal_moves:
                candidate = promoted
            else:
                return MoveResult(legal=False)
        record = self._record(position, candidate)
        board = position.copy()
        board.push(candidate)
        reason = _terminal_reason(board)
        winner = None
        if reason == CHECKMATE:
            # Побеждает сторона, которая НЕ должна ходить после мата
            winner = _color_name(not board.turn)
        return MoveResult(
            legal=True,
            position=board,
            record=record,
            turn=_color_name(board.turn),
            terminal=reason,
            winner=winner,
            check=board.is_check(),
        )

    def describe(self, position: Board) -> dict[str, Any]:
        reason = _terminal_reason(position)
        return {
            "fen": position.fen(),
            "turn": _color_name(position.turn),
            "isCheck": position.is_check(),
            "isCheckmate": reason == CHECKMATE,
            "isStalemate": reason == STALEMATE,
            "isDraw": reason is not None and reason != CHECKMATE,
        }

    @staticmethod
    def _record(board: Board, move: chess.Move) -> dict[str, str]:
        piece = board.piece_at(move.from_square)
        uci = move.uci()
        record = {
            "color": "w" if board.turn == chess.WHITE else "b",
            "from": uci[:2],
            "to": uci[2:4],
            "piece": piece.symbol().lower() if piece else "",
            "san": board.san(move),
        }
        if board.is_capture(move):
            captured = board.piece_at(move.to_square)
            record["captured"] = captured.symbol().lower() if captured else "p"
        if move.promotion:
            record["promotion"] = chess.piece_symbol(move.promotion)
        return record
