"""
Исходящие сообщения. Обработчик события складывает их в Outbox,
координатор доставляет пачкой после того, как состояние уже изменено.
"""
import logging
from dataclasses import dataclass
from typing import Any

from .protocol import envelope
from .registry import ConnectionRegistry, Transport

logger = logging.getLogger(__name__)


@dataclass
class _Send:
    transport: Transport
    target: str
    payload: dict[str, Any]


@dataclass
class _Close:
    transport: Transport
    target: str
    code: int
    reason: str


class Outbox:
    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry
        self._actions: list[_Send | _Close] = []

    def __len__(self) -> int:
        return len(self._actions)

    def send(self, conn_id: str, msg_type: str, payload: dict[str, Any] | None = None) -> bool:
        """В очередь к зарегистрированному подключению. False, если его уже нет."""
        entry = self._registry.get(conn_id)
        if entry is None:
            logger.info("send %s to %s skipped: not connected", msg_type, conn_id)
            return False
        self._actions.append(_Send(entry.transport, conn_id, envelope(msg_type, payload)))
        return True

    def close(self, transport: Transport, code: int, reason: str = "", target: str = "?") -> None:
        self._actions.append(_Close(transport, target, code, reason))

    async def deliver(self) -> None:
        actions, self._actions = self._actions, []
        for action in actions:
            if isinstance(action, _Send):
                try:
                    await action.transport.send_json(action.payload)
                except Exception as e:
                    logger.warning("send_to %s (%s): %s", action.target, action.payload["type"], e)
            else:
                try:
                    await action.transport.close(code=action.code, reason=action.reason)
                except Exception as e:
                    logger.warning("close %s: %s", action.target, e)
