"""
Координатор: единая очередь событий и таблица обработчиков по типу сообщения.

Все события (открытие/закрытие транспорта, входящие кадры, тики heartbeat,
истечение грантов) обрабатываются по одному в одной задаче: сначала меняется
состояние, затем доставляются накопленные исходящие сообщения.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from .auth import TokenSigner
from .config import Config
from .constants import (
    CONNECTION_ESTABLISHED,
    DRAW,
    DRAW_ACCEPTED,
    DRAW_DECLINED,
    DRAW_OFFER,
    GAME_OVER,
    INIT_GAME,
    MOVE,
    OFFER_DRAW,
    PONG,
    RECONNECT_REQUEST,
    RECONNECTION_FAILED,
    RECONNECTION_SUCCESSFUL,
    RESIGN,
    UPDATE_BOARD,
)
from .liveness import LivenessMonitor
from .pairing import Matchmaker, Paired, Waiting
from .protocol import ProtocolError, parse_message
from .reconnection import ReconnectFailure, ReconnectionManager, Scheduler
from .registry import ConnectionEntry, ConnectionRegistry, Transport
from .session import MoveRejected, Session, SessionRegistry, Slot
from .validator import ChessMoveValidator, MoveValidator
from .ws_manager import Outbox

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class TransportOpened:
    transport: Transport


@dataclass(eq=False)
class MessageReceived:
    transport: Transport
    raw: str


@dataclass(eq=False)
class TransportClosed:
    transport: Transport


@dataclass(eq=False)
class HeartbeatTick:
    pass


@dataclass(eq=False)
class GrantExpired:
    connection_id: str
    grant_id: str


Event = TransportOpened | MessageReceived | TransportClosed | HeartbeatTick | GrantExpired


def _call_later(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class Coordinator:
    def __init__(
        self,
        config: Config,
        validator: MoveValidator | None = None,
        clock: Callable[[], float] = time.monotonic,
        schedule: Scheduler | None = None,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.registry = ConnectionRegistry(clock)
        self.sessions = SessionRegistry()
        self.matchmaker = Matchmaker(self.sessions, validator or ChessMoveValidator())
        self.reconnection = ReconnectionManager(
            registry=self.registry,
            sessions=self.sessions,
            matchmaker=self.matchmaker,
            signer=TokenSigner(config.token_secret, config.token_lifetime, clock=wall_clock),
            schedule=schedule or _call_later,
            on_expire=lambda conn_id, grant_id: self.post(GrantExpired(conn_id, grant_id)),
            window=config.reconnection_window,
            cooldown=config.token_reissue_cooldown,
            clock=clock,
        )
        self.liveness = LivenessMonitor(
            self.registry,
            interval=config.heartbeat_interval,
            timeout=config.heartbeat_timeout,
            on_tick=lambda: self.post(HeartbeatTick()),
        )
        self._queue: asyncio.Queue[tuple[Event, asyncio.Future | None]] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._events = {
            TransportOpened: self._on_open,
            MessageReceived: self._on_message,
            TransportClosed: self._on_close,
            HeartbeatTick: self._on_tick,
            GrantExpired: self._on_grant_expired,
        }
        self._handlers = {
            INIT_GAME: self._on_init_game,
            RECONNECT_REQUEST: self._on_reconnect_request,
            PONG: lambda entry, msg, outbox: None,
        }
        # Игровые действия — только от подключений, занимающих слот активной партии
        self._game_handlers = {
            MOVE: self._on_move,
            RESIGN: self._on_resign,
            OFFER_DRAW: self._on_offer_draw,
            DRAW_ACCEPTED: self._on_draw_accepted,
            DRAW_DECLINED: self._on_draw_declined,
        }

    # --- жизненный цикл ---

    async def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self.run(), name="coordinator")
        self.liveness.start()
        logger.info("Coordinator started")

    async def stop(self) -> None:
        await self.liveness.stop()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        # Ожидающие submit() не должны висеть после остановки
        dropped = 0
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            if future is not None and not future.done():
                future.cancel()
            self._queue.task_done()
            dropped += 1
        self.reconnection.cancel_all()
        logger.info("Coordinator stopped, %d queued events dropped", dropped)

    def post(self, event: Event) -> None:
        """Поставить событие в очередь, не дожидаясь обработки."""
        self._queue.put_nowait((event, None))

    async def submit(self, event: Event) -> Any:
        """Поставить событие в очередь и дождаться результата обработки."""
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((event, future))
        return await future

    async def run(self) -> None:
        while True:
            event, future = await self._queue.get()
            try:
                result = await self.process(event)
            except asyncio.CancelledError:
                if future is not None and not future.done():
                    future.cancel()
                raise
            finally:
                self._queue.task_done()
            if future is not None and not future.done():
                future.set_result(result)

    async def drain(self) -> None:
        """Обработать всё, что уже лежит в очереди (без фоновой задачи)."""
        while not self._queue.empty():
            event, future = self._queue.get_nowait()
            result = await self.process(event)
            if future is not None and not future.done():
                future.set_result(result)
            self._queue.task_done()

    async def process(self, event: Event) -> Any:
        outbox = Outbox(self.registry)
        result = None
        try:
            result = self._events[type(event)](event, outbox)
        except Exception:
            logger.exception("Coordinator: error handling %s", type(event).__name__)
        await outbox.deliver()
        return result

    def stats(self) -> dict[str, int]:
        return {
            "connections": len(self.registry),
            "active_sessions": len(self.sessions),
            "waiting": 1 if self.matchmaker.waiting else 0,
            "pending_reconnections": self.reconnection.pending_count(),
        }

    # --- события транспорта ---

    def _on_open(self, event: TransportOpened, outbox: Outbox) -> str:
        conn_id = self.registry.register(event.transport)
        outbox.send(conn_id, CONNECTION_ESTABLISHED, {"connectionId": conn_id})
        return conn_id

    def _on_close(self, event: TransportClosed, outbox: Outbox) -> None:
        entry = self.registry.lookup_transport(event.transport)
        if entry is None:
            return
        self._disconnect(entry.id, event.transport, outbox)

    def _disconnect(self, conn_id: str, transport: Transport, outbox: Outbox) -> None:
        entry = self.registry.unregister(conn_id, transport)
        if entry is None:
            return
        self.reconnection.on_connection_lost(entry, outbox)

    def _on_tick(self, event: HeartbeatTick, outbox: Outbox) -> None:
        self.liveness.tick(outbox, self._disconnect)
        self.reconnection.refresh_tokens(outbox)

    def _on_grant_expired(self, event: GrantExpired, outbox: Outbox) -> None:
        self.reconnection.on_forfeiture_timer_fired(event.connection_id, event.grant_id, outbox)

    def _on_message(self, event: MessageReceived, outbox: Outbox) -> None:
        entry = self.registry.lookup_transport(event.transport)
        if entry is None:
            logger.info("WS: message from unregistered transport dropped")
            return
        self.registry.touch(entry.id)
        try:
            msg = parse_message(event.raw)
        except ProtocolError as e:
            logger.warning("WS: bad frame from %s: %s", entry.id, e)
            return
        logger.debug("WS: msg from %s type=%s", entry.id, msg.type)
        handler = self._handlers.get(msg.type)
        if handler is not None:
            handler(entry, msg, outbox)
            return
        session = self._active_session(entry)
        if session is None:
            logger.info("WS: %s from %s without an active game dropped", msg.type, entry.id)
            return
        self._game_handlers[msg.type](session, session.slot_of(entry.id), msg, outbox)

    def _active_session(self, entry: ConnectionEntry) -> Session | None:
        if not entry.session_id:
            return None
        session = self.sessions.get(entry.session_id)
        if session is None or not session.is_active or session.slot_of(entry.id) is None:
            return None
        return session

    def _broadcast(self, session: Session, msg_type: str, payload: dict, outbox: Outbox) -> None:
        for slot in (Slot.A, Slot.B):
            outbox.send(session.binding(slot).connection_id, msg_type, payload)

    # --- сообщения вне партии ---

    def _on_init_game(self, entry: ConnectionEntry, msg, outbox: Outbox) -> None:
        result = self.matchmaker.enqueue_or_pair(entry.id, msg.player_name)
        if isinstance(result, Waiting):
            entry.display_name = result.display_name
            return
        if not isinstance(result, Paired):
            return
        session = result.session
        seated = []
        for slot in (Slot.A, Slot.B):
            binding = session.binding(slot)
            player = self.registry.get(binding.connection_id)
            if player is None:
                continue
            player.session_id = session.id
            player.display_name = binding.display_name
            seated.append(player)
            outbox.send(player.id, INIT_GAME, {
                "color": slot.color,
                "opponentName": session.binding(slot.other).display_name,
            })
        for player in seated:
            self.reconnection.issue_token(player, outbox)

    def _on_reconnect_request(self, entry: ConnectionEntry, msg, outbox: Outbox) -> None:
        result = self.reconnection.attempt_reconnect(msg.token, entry, outbox)
        if isinstance(result, ReconnectFailure):
            logger.info("Reconnect by %s failed: %s", entry.id, result.reason)
            outbox.send(entry.id, RECONNECTION_FAILED, {"reason": result.reason})
            return
        session = result.session
        outbox.send(result.entry.id, RECONNECTION_SUCCESSFUL, {
            "gameState": result.snapshot,
            "color": result.slot.color,
            "opponentName": session.binding(result.slot.other).display_name,
        })
        self.reconnection.issue_token(result.entry, outbox)

    # --- игровые действия ---

    def _on_move(self, session: Session, slot: Slot, msg, outbox: Outbox) -> None:
        outcome = session.apply_move(slot, msg)
        if isinstance(outcome, MoveRejected):
            logger.info("Session %s: move %s by %s rejected: %s", session.id, msg.uci, slot.color, outcome.reason)
            return
        self._broadcast(session, UPDATE_BOARD, {
            "board": outcome.fen,
            "move": outcome.move,
            "history": outcome.history,
        }, outbox)
        if outcome.terminal:
            self._broadcast(session, GAME_OVER, {
                "winner": outcome.winner or DRAW,
                "winType": outcome.terminal,
            }, outbox)
            self.reconnection.close_session(session)

    def _on_resign(self, session: Session, slot: Slot, msg, outbox: Outbox) -> None:
        ended = session.resign(slot)
        if ended is None:
            return
        self._broadcast(session, RESIGN, {"winner": ended.winner}, outbox)
        self.reconnection.close_session(session)

    def _on_offer_draw(self, session: Session, slot: Slot, msg, outbox: Outbox) -> None:
        if session.offer_draw(slot):
            outbox.send(session.binding(slot.other).connection_id, DRAW_OFFER, {"player": slot.color})

    def _on_draw_accepted(self, session: Session, slot: Slot, msg, outbox: Outbox) -> None:
        ended = session.accept_draw(slot)
        if ended is None:
            return
        self._broadcast(session, GAME_OVER, {"winner": DRAW, "winType": ended.reason}, outbox)
        self.reconnection.close_session(session)

    def _on_draw_declined(self, session: Session, slot: Slot, msg, outbox: Outbox) -> None:
        if session.decline_draw(slot):
            self._broadcast(session, DRAW_DECLINED, {}, outbox)
