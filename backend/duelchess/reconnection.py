"""
Переподключение: токены, гранты и таймеры форфейта.

Токен выдаётся игроку, пока он на связи (при старте партии и затем по тикам),
не чаще одного раза за cooldown. При обрыве создаётся грант и взводится таймер
на окно переподключения. Грант либо погашается переподключением, либо истекает
по таймеру, но не то и другое сразу.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Any, Callable, Protocol

from .auth import TokenError, TokenSigner
from .constants import (
    ALREADY_ENDED,
    ALREADY_IN_GAME,
    CLOSE_SUPERSEDED,
    GAME_OVER,
    INVALID_OR_EXPIRED,
    OPPONENT_DISCONNECTED_TEMP,
    OPPONENT_RECONNECTED,
    RECONNECTION_TOKEN,
    SESSION_GONE,
)
from .pairing import Matchmaker
from .registry import ConnectionEntry, ConnectionRegistry
from .session import Session, SessionRegistry, Slot
from .ws_manager import Outbox

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


@dataclass(eq=False)
class ReconnectionGrant:
    connection_id: str
    session_id: str
    slot: Slot
    display_name: str
    issued_at: float
    grant_id: str
    timer: TimerHandle
    last_token_issued_at: float | None = None


@dataclass
class ReconnectSuccess:
    session: Session
    slot: Slot
    entry: ConnectionEntry
    snapshot: dict[str, Any]


@dataclass
class ReconnectFailure:
    reason: str


class ReconnectionManager:
    def __init__(
        self,
        registry: ConnectionRegistry,
        sessions: SessionRegistry,
        matchmaker: Matchmaker,
        signer: TokenSigner,
        schedule: Scheduler,
        on_expire: Callable[[str, str], None],
        window: float,
        cooldown: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._registry = registry
        self._sessions = sessions
        self._matchmaker = matchmaker
        self._signer = signer
        self._schedule = schedule
        self._on_expire = on_expire
        self._window = window
        self._cooldown = cooldown
        self._clock = clock
        self._grants: dict[str, ReconnectionGrant] = {}
        # connection id -> {jti: срок действия}; токен годен, только пока его jti здесь
        self._live_tokens: dict[str, dict[str, datetime]] = {}

    @property
    def window_seconds(self) -> int:
        return int(self._window)

    def grant_for(self, connection_id: str) -> ReconnectionGrant | None:
        return self._grants.get(connection_id)

    def pending_count(self) -> int:
        return len(self._grants)

    # --- токены ---

    def issue_token(self, entry: ConnectionEntry, outbox: Outbox) -> bool:
        """
        Выдать токен переподключения занятому в партии подключению.
        В пределах cooldown выдача молча подавляется.
        """
        session = self._sessions.get(entry.session_id) if entry.session_id else None
        if session is None or not session.is_active:
            return False
        slot = session.slot_of(entry.id)
        if slot is None:
            return False
        now = self._clock()
        if entry.last_token_issued_at is not None and now - entry.last_token_issued_at < self._cooldown:
            logger.debug("Token for %s suppressed by cooldown", entry.id)
            return False
        token, claims = self._signer.issue(
            entry.id, session.id, slot.value, session.binding(slot).display_name
        )
        live = self._live_tokens.setdefault(entry.id, {})
        for jti in [j for j, exp in live.items() if self._signer.expired(exp)]:
            del live[jti]
        live[claims.jti] = claims.expires_at
        entry.last_token_issued_at = now
        outbox.send(entry.id, RECONNECTION_TOKEN, {
            "token": token,
            "expiresIn": int(self._signer.lifetime_seconds),
        })
        return True

    def refresh_tokens(self, outbox: Outbox) -> None:
        for entry in self._registry:
            if entry.session_id:
                self.issue_token(entry, outbox)

    # --- обрыв связи ---

    def on_connection_lost(self, entry: ConnectionEntry, outbox: Outbox) -> ReconnectionGrant | None:
        if self._matchmaker.withdraw(entry.id):
            return None
        session = self._sessions.get(entry.session_id) if entry.session_id else None
        if session is None or not session.is_active:
            return None
        slot = session.slot_of(entry.id)
        if slot is None:
            return None
        session.mark_disconnected(slot)
        outbox.send(
            session.binding(slot.other).connection_id,
            OPPONENT_DISCONNECTED_TEMP,
            {"reconnectionWindowSeconds": self.window_seconds},
        )
        stale = self._grants.pop(entry.id, None)
        if stale is not None:
            stale.timer.cancel()
        grant_id = uuid.uuid4().hex
        grant = ReconnectionGrant(
            connection_id=entry.id,
            session_id=session.id,
            slot=slot,
            display_name=session.binding(slot).display_name,
            issued_at=self._clock(),
            grant_id=grant_id,
            timer=self._schedule(self._window, partial(self._on_expire, entry.id, grant_id)),
            last_token_issued_at=entry.last_token_issued_at,
        )
        self._grants[entry.id] = grant
        logger.info(
            "Connection %s lost in session %s, holding slot %s for %ss",
            entry.id, session.id, slot.value, self.window_seconds,
        )
        return grant

    def on_forfeiture_timer_fired(self, connection_id: str, grant_id: str, outbox: Outbox) -> Session | None:
        grant = self._grants.get(connection_id)
        if grant is None or grant.grant_id != grant_id:
            # Грант уже погашен переподключением или заменён
            logger.debug("Forfeiture timer for %s is stale, ignoring", connection_id)
            return None
        del self._grants[connection_id]
        session = self._sessions.get(grant.session_id)
        if session is None:
            return None
        ended = session.forfeit_by_slot(grant.slot)
        if ended is None:
            return None
        logger.info("Session %s forfeited by %s (no reconnection)", session.id, connection_id)
        for slot in (Slot.A, Slot.B):
            outbox.send(
                session.binding(slot).connection_id,
                GAME_OVER,
                {"winner": ended.winner, "winType": ended.reason},
            )
        self.close_session(session)
        return session

    # --- переподключение ---

    def attempt_reconnect(
        self, token: str, new_entry: ConnectionEntry, outbox: Outbox
    ) -> ReconnectSuccess | ReconnectFailure:
        try:
            claims = self._signer.verify(token)
        except TokenError as e:
            logger.info("Reconnect by %s rejected: %s", new_entry.id, e)
            return ReconnectFailure(INVALID_OR_EXPIRED)
        session = self._sessions.get(claims.session_id)
        if session is None:
            return ReconnectFailure(SESSION_GONE)
        if session.terminal:
            return ReconnectFailure(ALREADY_ENDED)
        slot = Slot(claims.slot)
        binding = session.binding(slot)
        live = self._live_tokens.get(claims.connection_id, {})
        if binding.connection_id != claims.connection_id or claims.jti not in live:
            logger.info("Reconnect by %s rejected: token already used or revoked", new_entry.id)
            return ReconnectFailure(INVALID_OR_EXPIRED)
        if new_entry.id == claims.connection_id or self._sessions.find_by_connection(new_entry.id):
            return ReconnectFailure(ALREADY_IN_GAME)

        self._matchmaker.withdraw(new_entry.id)
        grant = self._grants.pop(claims.connection_id, None)
        if grant is not None:
            grant.timer.cancel()
        session.rebind_slot(slot, claims.connection_id)
        entry, superseded = self._registry.adopt(new_entry.id, claims.connection_id)
        entry.session_id = session.id
        entry.display_name = binding.display_name
        if grant is not None:
            entry.last_token_issued_at = grant.last_token_issued_at
        if superseded is not None:
            outbox.close(superseded, CLOSE_SUPERSEDED, "superseded by reconnection", target=entry.id)
        # Все ранее выданные токены этого слота больше не действуют
        self._live_tokens.pop(claims.connection_id, None)
        outbox.send(session.binding(slot.other).connection_id, OPPONENT_RECONNECTED, {})
        logger.info("Connection %s resumed slot %s of session %s", entry.id, slot.value, session.id)
        return ReconnectSuccess(session=session, slot=slot, entry=entry, snapshot=session.snapshot())

    # --- завершение ---

    def close_session(self, session: Session) -> None:
        """Убрать завершённую партию: реестр, гранты, таймеры, токены, привязки подключений."""
        self._sessions.remove(session.id)
        for slot in (Slot.A, Slot.B):
            conn_id = session.binding(slot).connection_id
            grant = self._grants.get(conn_id)
            if grant is not None and grant.session_id == session.id:
                grant.timer.cancel()
                del self._grants[conn_id]
            self._live_tokens.pop(conn_id, None)
            entry = self._registry.get(conn_id)
            if entry is not None and entry.session_id == session.id:
                entry.session_id = None

    def cancel_all(self) -> None:
        for grant in self._grants.values():
            grant.timer.cancel()
        self._grants.clear()
