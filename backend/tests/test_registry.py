from duelchess.registry import ConnectionRegistry
from helpers import FakeClock, FakeTransport


def test_register_and_lookup():
    registry = ConnectionRegistry(FakeClock())
    t = FakeTransport()
    conn_id = registry.register(t)
    assert registry.get(conn_id).transport is t
    assert registry.lookup_transport(t).id == conn_id
    assert registry.lookup_transport(FakeTransport()) is None


def test_sweep_uses_last_activity():
    clock = FakeClock()
    registry = ConnectionRegistry(clock)
    quiet = registry.register(FakeTransport())
    chatty = registry.register(FakeTransport())
    clock.advance(50)
    registry.touch(chatty)
    clock.advance(20)
    assert [e.id for e in registry.sweep(60)] == [quiet]


def test_unregister_runs_once():
    registry = ConnectionRegistry(FakeClock())
    t = FakeTransport()
    conn_id = registry.register(t)
    assert registry.unregister(conn_id, t) is not None
    assert registry.unregister(conn_id, t) is None
    assert registry.lookup_transport(t) is None
    assert len(registry) == 0


def test_adopt_after_original_is_gone():
    registry = ConnectionRegistry(FakeClock())
    old, new = FakeTransport(), FakeTransport()
    original = registry.register(old)
    registry.unregister(original)
    new_id = registry.register(new)
    entry, superseded = registry.adopt(new_id, original)
    assert superseded is None
    assert entry.id == original
    assert registry.get(new_id) is None
    assert registry.lookup_transport(new).id == original


def test_adopt_supersedes_live_transport():
    registry = ConnectionRegistry(FakeClock())
    old, new = FakeTransport(), FakeTransport()
    original = registry.register(old)
    new_id = registry.register(new)
    entry, superseded = registry.adopt(new_id, original)
    assert superseded is old
    assert entry.transport is new
    assert registry.lookup_transport(old) is None
    # закрытие старого транспорта не трогает новую запись
    assert registry.unregister(original, old) is None
    assert registry.get(original) is entry
