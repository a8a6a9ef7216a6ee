from duelchess.pairing import (
    AlreadyInGame,
    AlreadyWaiting,
    Matchmaker,
    Paired,
    Waiting,
    WaitingEntry,
)
from duelchess.session import SessionRegistry
from duelchess.validator import ChessMoveValidator


def make():
    sessions = SessionRegistry()
    return Matchmaker(sessions, ChessMoveValidator()), sessions


def test_pairing_puts_first_player_in_slot_a():
    mm, sessions = make()
    assert isinstance(mm.enqueue_or_pair("c1", "Alice"), Waiting)
    result = mm.enqueue_or_pair("c2", "Bob")
    assert isinstance(result, Paired)
    session = result.session
    assert (session.a.connection_id, session.a.display_name) == ("c1", "Alice")
    assert (session.b.connection_id, session.b.display_name) == ("c2", "Bob")
    assert mm.waiting is None
    assert len(sessions) == 1


def test_no_self_pairing():
    mm, sessions = make()
    assert isinstance(mm.enqueue_or_pair("c1", "Alice"), Waiting)
    assert isinstance(mm.enqueue_or_pair("c1", "Alice"), AlreadyWaiting)
    assert mm.waiting == WaitingEntry("c1", "Alice")
    assert len(sessions) == 0


def test_player_in_active_game_is_rejected():
    mm, sessions = make()
    mm.enqueue_or_pair("c1", "Alice")
    session = mm.enqueue_or_pair("c2", "Bob").session
    result = mm.enqueue_or_pair("c2", "Bob")
    assert isinstance(result, AlreadyInGame)
    assert result.session is session
    assert mm.waiting is None


def test_withdraw():
    mm, _ = make()
    mm.enqueue_or_pair("c1", "Alice")
    assert not mm.withdraw("c2")
    assert mm.withdraw("c1")
    assert mm.waiting is None
    # после ухода ожидающего новый игрок не сопрягается с мёртвым подключением
    assert isinstance(mm.enqueue_or_pair("c2", "Bob"), Waiting)


def test_default_name():
    mm, _ = make()
    mm.enqueue_or_pair("abcdef0123456789", "")
    assert mm.waiting.display_name == "player_abcdef01"
