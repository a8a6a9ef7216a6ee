"""
Реестр живых подключений: id, время последней активности, привязка к партии.
unregister — единственная точка очистки при любом способе отключения.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Protocol

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


@dataclass(eq=False)
class ConnectionEntry:
    id: str
    transport: Transport
    last_seen: float
    last_token_issued_at: float | None = None
    session_id: str | None = None
    display_name: str = ""


class ConnectionRegistry:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._by_id: dict[str, ConnectionEntry] = {}
        # WebSocket у starlette не хешируется, поэтому ключ — id(transport)
        self._by_transport: dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[ConnectionEntry]:
        return iter(list(self._by_id.values()))

    def register(self, transport: Transport) -> str:
        conn_id = uuid.uuid4().hex
        self._by_id[conn_id] = ConnectionEntry(
            id=conn_id, transport=transport, last_seen=self._clock()
        )
        self._by_transport[id(transport)] = conn_id
        logger.info("Registry: registered %s, total=%d", conn_id, len(self._by_id))
        return conn_id

    def get(self, conn_id: str) -> ConnectionEntry | None:
        return self._by_id.get(conn_id)

    def lookup_transport(self, transport: Transport) -> ConnectionEntry | None:
        conn_id = self._by_transport.get(id(transport))
        if conn_id is None:
            return None
        entry = self._by_id.get(conn_id)
        if entry is None or entry.transport is not transport:
            return None
        return entry

    def touch(self, conn_id: str) -> None:
        entry = self._by_id.get(conn_id)
        if entry:
            entry.last_seen = self._clock()

    def sweep(self, threshold: float) -> list[ConnectionEntry]:
        """
        Подключения, молчащие дольше threshold секунд.
        Вызывающий закрывает транспорт и пропускает каждое через unregister.
        """
        now = self._clock()
        return [e for e in self._by_id.values() if now - e.last_seen > threshold]

    def unregister(self, conn_id: str, transport: Transport | None = None) -> ConnectionEntry | None:
        """
        Удаляет запись. Возвращает её или None, если запись уже удалена
        или id занят другим (переподключившимся) транспортом.
        """
        entry = self._by_id.get(conn_id)
        if entry is None:
            return None
        if transport is not None and entry.transport is not transport:
            return None
        del self._by_id[conn_id]
        self._by_transport.pop(id(entry.transport), None)
        logger.info("Registry: unregistered %s, total=%d", conn_id, len(self._by_id))
        return entry

    def adopt(self, new_id: str, original_id: str) -> tuple[ConnectionEntry, Transport | None]:
        """
        Переносит транспорт new_id под original_id.
        Возвращает запись original_id и вытесненный старый транспорт, если он ещё был жив.
        """
        incoming = self._by_id.pop(new_id)
        superseded = None
        entry = self._by_id.get(original_id)
        if entry is None:
            entry = ConnectionEntry(
                id=original_id,
                transport=incoming.transport,
                last_seen=self._clock(),
                last_token_issued_at=None,
            )
            self._by_id[original_id] = entry
        else:
            superseded = entry.transport
            self._by_transport.pop(id(superseded), None)
            entry.transport = incoming.transport
            entry.last_seen = self._clock()
        self._by_transport[id(incoming.transport)] = original_id
        logger.info("Registry: %s now continues as %s", new_id, original_id)
        return entry, superseded
