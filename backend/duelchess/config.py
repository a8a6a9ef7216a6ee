"""Конфигурация приложения."""
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping

from .constants import (
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_RECONNECTION_WINDOW,
    DEFAULT_TOKEN_REISSUE_COOLDOWN,
)


class ConfigError(RuntimeError):
    """Неполная или некорректная конфигурация: сервер не должен стартовать."""


@dataclass(frozen=True)
class Config:
    token_secret: str
    heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL
    heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT
    reconnection_window: float = DEFAULT_RECONNECTION_WINDOW
    token_reissue_cooldown: float = DEFAULT_TOKEN_REISSUE_COOLDOWN
    allowed_origins: tuple[str, ...] = ("*",)
    debug: bool = False

    @property
    def token_lifetime(self) -> float:
        """
        Срок жизни токена переподключения. Обрыв замечается не сразу
        (до heartbeat_timeout + heartbeat_interval после последней активности),
        и выданный до обрыва токен должен пережить всё окно после этого.
        """
        return self.heartbeat_timeout + self.heartbeat_interval + self.reconnection_window

    def origin_allowed(self, origin: str | None) -> bool:
        if "*" in self.allowed_origins:
            return True
        return origin is not None and origin in self.allowed_origins


def _seconds(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def load_config(env: Mapping[str, str]) -> Config:
    """Собирает Config из переменных окружения. Бросает ConfigError."""
    secret = env.get("RECONNECT_TOKEN_SECRET", "")
    if not secret:
        raise ConfigError("RECONNECT_TOKEN_SECRET is not set")
    interval = _seconds(env, "HEARTBEAT_INTERVAL", DEFAULT_HEARTBEAT_INTERVAL)
    timeout = _seconds(env, "HEARTBEAT_TIMEOUT", DEFAULT_HEARTBEAT_TIMEOUT)
    if timeout <= interval:
        raise ConfigError("HEARTBEAT_TIMEOUT must be larger than HEARTBEAT_INTERVAL")
    origins = tuple(
        o.strip() for o in env.get("ALLOWED_ORIGINS", "*").split(",") if o.strip()
    )
    return Config(
        token_secret=secret,
        heartbeat_interval=interval,
        heartbeat_timeout=timeout,
        reconnection_window=_seconds(env, "RECONNECTION_WINDOW", DEFAULT_RECONNECTION_WINDOW),
        token_reissue_cooldown=_seconds(
            env, "TOKEN_REISSUE_COOLDOWN", DEFAULT_TOKEN_REISSUE_COOLDOWN
        ),
        allowed_origins=origins or ("*",),
        debug=env.get("DEBUG", "0").lower() in ("1", "true", "yes"),
    )


@lru_cache
def get_config() -> Config:
    return load_config(os.environ)
