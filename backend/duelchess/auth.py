"""
Токены переподключения: подписанный JWT (HS256).
Токен несёт id исходного подключения, id партии, слот и имя игрока.

Токен выдаётся заранее, пока игрок на связи, поэтому живёт дольше окна
переподключения: окно отсчитывается от обнаружения обрыва и соблюдается
грантом и таймером форфейта, а не сроком токена.
"""
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import jwt

ALGORITHM = "HS256"
ISSUER = "duelchess"


class TokenError(Exception):
    """Подпись не сходится, срок истёк или не хватает полей."""


@dataclass(frozen=True)
class GrantClaims:
    connection_id: str
    session_id: str
    slot: str
    display_name: str
    jti: str
    expires_at: datetime


class TokenSigner:
    def __init__(
        self,
        secret: str,
        lifetime_seconds: float,
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret
        self.lifetime_seconds = lifetime_seconds
        # Unix time; срок проверяется по этим же часам
        self._clock = clock

    def expired(self, expires_at: datetime) -> bool:
        return expires_at.timestamp() <= self._clock()

    def issue(
        self,
        connection_id: str,
        session_id: str,
        slot: str,
        display_name: str,
    ) -> tuple[str, GrantClaims]:
        now = self._clock()
        claims = GrantClaims(
            connection_id=connection_id,
            session_id=session_id,
            slot=slot,
            display_name=display_name,
            jti=uuid.uuid4().hex,
            expires_at=datetime.fromtimestamp(int(now + self.lifetime_seconds), tz=timezone.utc),
        )
        payload = {
            "sub": claims.connection_id,
            "sid": claims.session_id,
            "slot": claims.slot,
            "name": claims.display_name,
            "jti": claims.jti,
            "iat": int(now),
            "exp": claims.expires_at,
            "iss": ISSUER,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM), claims

    def verify(self, token: str) -> GrantClaims:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                issuer=ISSUER,
                # exp сверяется ниже по self._clock
                options={
                    "require": ["sub", "sid", "slot", "jti", "exp"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            raise TokenError(f"invalid token: {e}") from e
        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            raise TokenError(f"invalid exp claim: {payload['exp']!r}") from e
        if self.expired(expires_at):
            raise TokenError("token expired")
        if payload["slot"] not in ("A", "B"):
            raise TokenError(f"invalid slot claim: {payload['slot']!r}")
        return GrantClaims(
            connection_id=str(payload["sub"]),
            session_id=str(payload["sid"]),
            slot=payload["slot"],
            display_name=str(payload.get("name", "")),
            jti=str(payload["jti"]),
            expires_at=expires_at,
        )
