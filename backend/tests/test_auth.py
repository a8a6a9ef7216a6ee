import pytest

from duelchess.auth import TokenError, TokenSigner
from helpers import FakeClock


def test_issue_and_verify():
    signer = TokenSigner("secret", 120)
    token, issued = signer.issue("conn-1", "session-1", "B", "Bob")
    claims = signer.verify(token)
    assert claims.jti == issued.jti
    assert abs((claims.expires_at - issued.expires_at).total_seconds()) < 1
    assert (claims.connection_id, claims.session_id, claims.slot, claims.display_name) == (
        "conn-1", "session-1", "B", "Bob",
    )


def test_wrong_secret():
    token, _ = TokenSigner("secret", 120).issue("c", "s", "A", "")
    with pytest.raises(TokenError):
        TokenSigner("other", 120).verify(token)


def test_expired():
    signer = TokenSigner("secret", -5)
    token, _ = signer.issue("c", "s", "A", "")
    with pytest.raises(TokenError, match="expired"):
        signer.verify(token)


def test_tampered():
    signer = TokenSigner("secret", 120)
    token, _ = signer.issue("c", "s", "A", "")
    header, body, sig = token.split(".")
    with pytest.raises(TokenError):
        signer.verify(".".join([header, body[:-2] + "xx", sig]))
    with pytest.raises(TokenError):
        signer.verify("garbage")


def test_empty_secret_refused():
    with pytest.raises(ValueError):
        TokenSigner("", 120)


def test_expiry_is_checked_against_the_injected_clock():
    clock = FakeClock()
    signer = TokenSigner("secret", 210, clock=clock)
    token, claims = signer.issue("c", "s", "B", "Bob")
    assert claims.expires_at.timestamp() == clock.now + 210

    clock.advance(209)
    assert signer.verify(token).jti == claims.jti
    clock.advance(2)
    with pytest.raises(TokenError, match="expired"):
        signer.verify(token)
