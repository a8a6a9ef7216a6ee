"""
Пейринг: одно место ожидания, пара создаётся сразу при появлении второго игрока.
Ожидающий получает белых (слот A), пришедший вторым — чёрных (слот B).
"""
import logging
from dataclasses import dataclass

from .session import Session, SessionRegistry, SlotBinding
from .validator import MoveValidator

logger = logging.getLogger(__name__)


@dataclass
class WaitingEntry:
    connection_id: str
    display_name: str


@dataclass
class Paired:
    session: Session


@dataclass
class Waiting:
    display_name: str


@dataclass
class AlreadyWaiting:
    pass


@dataclass
class AlreadyInGame:
    session: Session


PairingResult = Paired | Waiting | AlreadyWaiting | AlreadyInGame


def default_name(connection_id: str) -> str:
    return f"player_{connection_id[:8]}"


class Matchmaker:
    def __init__(self, sessions: SessionRegistry, validator: MoveValidator):
        self._sessions = sessions
        self._validator = validator
        self._waiting: WaitingEntry | None = None

    @property
    def waiting(self) -> WaitingEntry | None:
        return self._waiting

    def enqueue_or_pair(self, connection_id: str, display_name: str) -> PairingResult:
        """
        Создать партию с ожидающим или встать в ожидание.
        Повторный запрос от уже ожидающего — no-op.
        """
        existing = self._sessions.find_by_connection(connection_id)
        if existing is not None:
            logger.info("Pairing: %s is already in session %s", connection_id, existing.id)
            return AlreadyInGame(existing)
        name = display_name or default_name(connection_id)
        waiter = self._waiting
        if waiter is not None and waiter.connection_id == connection_id:
            logger.info("Pairing: %s already waiting", connection_id)
            return AlreadyWaiting()
        if waiter is None:
            self._waiting = WaitingEntry(connection_id, name)
            logger.info("Pairing: %s waiting for an opponent", connection_id)
            return Waiting(name)
        session = Session(
            a=SlotBinding(waiter.connection_id, waiter.display_name),
            b=SlotBinding(connection_id, name),
            validator=self._validator,
        )
        self._sessions.add(session)
        self._waiting = None
        logger.info(
            "Pairing: matched %s (white) with %s (black) in %s",
            waiter.connection_id, connection_id, session.id,
        )
        return Paired(session)

    def withdraw(self, connection_id: str) -> bool:
        """Убрать из ожидания. True, если подключение ждало."""
        if self._waiting is not None and self._waiting.connection_id == connection_id:
            self._waiting = None
            logger.info("Pairing: waiting player %s withdrawn", connection_id)
            return True
        return False
