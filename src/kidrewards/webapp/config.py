"""Configuration for the Kid Rewards web API.

Values come from the process environment, optionally populated from a
``.env`` file. The signing secret has no default: starting the API without
``KIDREWARDS_JWT_SECRET`` is a deployment error.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from ..exceptions import ConfigurationError
from ..models import BalanceStrategy
from ..persistence import DEMO_PARENT_PASSWORD
from ..security import MIN_SECRET_BYTES

JWT_SECRET_ENV = "KIDREWARDS_JWT_SECRET"
DATABASE_URL_ENV = "KIDREWARDS_DATABASE_URL"
TOKEN_HOURS_ENV = "KIDREWARDS_TOKEN_HOURS"
CORS_ORIGINS_ENV = "KIDREWARDS_CORS_ORIGINS"
SEED_DEMO_ENV = "KIDREWARDS_SEED_DEMO"
SEED_PASSWORD_ENV = "KIDREWARDS_SEED_PARENT_PASSWORD"
BALANCE_CACHE_ENV = "KIDREWARDS_BALANCE_CACHE"
EVENT_LOG_ENV = "KIDREWARDS_EVENT_LOG"

DEFAULT_DATABASE_URL = "sqlite:///kidrewards.db"
DEFAULT_TOKEN_HOURS = 8
DEFAULT_CORS_ORIGINS: Tuple[str, ...] = ("http://localhost:5173", "http://localhost:5000")

_TRUTHY = {"1", "true", "on", "yes"}


@dataclass(frozen=True, slots=True)
class Settings:
    jwt_secret: str
    database_url: str = DEFAULT_DATABASE_URL
    token_ttl: timedelta = timedelta(hours=DEFAULT_TOKEN_HOURS)
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    seed_demo: bool = False
    seed_parent_password: str = field(default=DEMO_PARENT_PASSWORD, repr=False)
    balance_strategy: BalanceStrategy = BalanceStrategy.RECOMPUTED
    event_log_path: Optional[Path] = None

    def __post_init__(self) -> None:
        if not self.jwt_secret:
            raise ConfigurationError(f"{JWT_SECRET_ENV} must be set; refusing to start without a signing secret.")
        if len(self.jwt_secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigurationError(f"{JWT_SECRET_ENV} must be at least {MIN_SECRET_BYTES} characters long.")


def _parse_hours(raw: str) -> timedelta:
    try:
        hours = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{TOKEN_HOURS_ENV} must be a number of hours, got {raw!r}.") from exc
    if hours <= 0:
        raise ConfigurationError(f"{TOKEN_HOURS_ENV} must be positive.")
    return timedelta(hours=hours)


def _parse_strategy(raw: str) -> BalanceStrategy:
    try:
        return BalanceStrategy(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(strategy.value for strategy in BalanceStrategy)
        raise ConfigurationError(f"{BALANCE_CACHE_ENV} must be one of: {choices}.") from exc


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from ``environ`` (defaults to ``os.environ`` plus ``.env``)."""

    if environ is None:
        load_dotenv()
        environ = os.environ

    origins_raw = environ.get(CORS_ORIGINS_ENV, "")
    origins = tuple(origin.strip() for origin in origins_raw.split(",") if origin.strip())
    event_log = environ.get(EVENT_LOG_ENV, "").strip()

    return Settings(
        jwt_secret=environ.get(JWT_SECRET_ENV, ""),
        database_url=environ.get(DATABASE_URL_ENV, DEFAULT_DATABASE_URL),
        token_ttl=_parse_hours(environ.get(TOKEN_HOURS_ENV, str(DEFAULT_TOKEN_HOURS))),
        cors_origins=origins or DEFAULT_CORS_ORIGINS,
        seed_demo=environ.get(SEED_DEMO_ENV, "").strip().lower() in _TRUTHY,
        seed_parent_password=environ.get(SEED_PASSWORD_ENV, DEMO_PARENT_PASSWORD),
        balance_strategy=_parse_strategy(environ.get(BALANCE_CACHE_ENV, BalanceStrategy.RECOMPUTED.value)),
        event_log_path=Path(event_log) if event_log else None,
    )


__all__ = [
    "BALANCE_CACHE_ENV",
    "CORS_ORIGINS_ENV",
    "DATABASE_URL_ENV",
    "DEFAULT_CORS_ORIGINS",
    "DEFAULT_DATABASE_URL",
    "DEFAULT_TOKEN_HOURS",
    "EVENT_LOG_ENV",
    "JWT_SECRET_ENV",
    "SEED_DEMO_ENV",
    "SEED_PASSWORD_ENV",
    "Settings",
    "TOKEN_HOURS_ENV",
    "load_settings",
]
