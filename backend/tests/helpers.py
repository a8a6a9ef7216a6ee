"""Подделки транспорта, часов и планировщика для тестов ядра."""
import json
from typing import Any

from duelchess.coordinator import Coordinator, MessageReceived, TransportClosed, TransportOpened


class FakeTransport:
    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.closed: tuple[int, str | None] | None = None

    async def send_json(self, data: Any) -> None:
        if self.closed is not None:
            raise RuntimeError("transport closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closed = (code, reason)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m["payload"] for m in self.sent if m["type"] == msg_type]

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def clear(self) -> None:
        self.sent.clear()


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled and not self.fired:
            self.fired = True
            self.callback()


class FakeScheduler:
    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, delay, callback) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    def active(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_all(self) -> None:
        for timer in list(self.timers):
            timer.fire()


async def connect(coordinator: Coordinator) -> tuple[FakeTransport, str]:
    transport = FakeTransport()
    conn_id = await coordinator.process(TransportOpened(transport))
    return transport, conn_id


async def send(coordinator: Coordinator, transport: FakeTransport, msg_type: str, payload=None) -> None:
    raw = json.dumps({"type": msg_type, "payload": payload or {}})
    await coordinator.process(MessageReceived(transport, raw))


async def disconnect(coordinator: Coordinator, transport: FakeTransport) -> None:
    await coordinator.process(TransportClosed(transport))


async def start_game(coordinator: Coordinator, white_name="Alice", black_name="Bob"):
    """Два подключения, init_game от обоих. Возвращает ((t, id) белых, (t, id) чёрных)."""
    white = await connect(coordinator)
    black = await connect(coordinator)
    await send(coordinator, white[0], "init_game", {"playerName": white_name})
    await send(coordinator, black[0], "init_game", {"playerName": black_name})
    return white, black
