"""
Heartbeat: раз в интервал — ping всем подключениям и поиск «молчащих».
Молчащие закрываются и проходят через тот же путь отключения, что и обычный close.
"""
import asyncio
import logging
from typing import Callable

from .constants import CLOSE_STALE, PING
from .registry import ConnectionEntry, ConnectionRegistry, Transport
from .ws_manager import Outbox

logger = logging.getLogger(__name__)


class LivenessMonitor:
    def __init__(
        self,
        registry: ConnectionRegistry,
        interval: float,
        timeout: float,
        on_tick: Callable[[], None],
    ):
        self._registry = registry
        self.interval = interval
        self.timeout = timeout
        self._on_tick = on_tick
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="liveness-monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self._on_tick()

    def tick(
        self,
        outbox: Outbox,
        disconnect: Callable[[str, Transport, Outbox], None],
    ) -> list[ConnectionEntry]:
        """Закрыть молчащие подключения, затем отправить ping остальным."""
        stale = self._registry.sweep(self.timeout)
        for entry in stale:
            logger.info("Liveness: %s timed out", entry.id)
            outbox.close(entry.transport, CLOSE_STALE, "heartbeat timeout", target=entry.id)
            disconnect(entry.id, entry.transport, outbox)
        for entry in self._registry:
            outbox.send(entry.id, PING)
        return stale
