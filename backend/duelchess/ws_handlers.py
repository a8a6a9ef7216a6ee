"""
Цикл WebSocket: проверка Origin, регистрация, передача кадров координатору.
Вся логика — в координаторе; здесь только транспорт.
"""
import logging

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect

from .constants import CLOSE_ORIGIN_REJECTED
from .coordinator import Coordinator, MessageReceived, TransportClosed, TransportOpened

logger = logging.getLogger(__name__)


async def ws_accept_and_loop(ws: WebSocket, coordinator: Coordinator) -> None:
    origin = ws.headers.get("origin")
    if not coordinator.config.origin_allowed(origin):
        # Закрытие до accept — отказ на этапе handshake (HTTP 403)
        logger.warning("WS: origin %r rejected from %s", origin, ws.client)
        await ws.close(code=CLOSE_ORIGIN_REJECTED, reason="origin not allowed")
        return
    conn_id = None
    try:
        await ws.accept()
        conn_id = await coordinator.submit(TransportOpened(ws))
        logger.info("WS: accepted %s from %s", conn_id, ws.client)
        while True:
            raw = await ws.receive_text()
            await coordinator.submit(MessageReceived(ws, raw))
    except WebSocketDisconnect as e:
        logger.info("WS: client disconnected code=%s reason=%s conn_id=%s", e.code, e.reason or "", conn_id)
    except Exception as e:
        logger.exception("WS: error conn_id=%s: %s", conn_id, e)
    finally:
        if conn_id is not None:
            coordinator.post(TransportClosed(ws))
