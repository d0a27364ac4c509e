"""
Runtime configuration.

Settings are read from the environment once, at startup, and passed to create_app().
Nothing in the engine reaches for os.environ on its own.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


def _default_db_path() -> Path:
    return Path(__file__).resolve().parent.parent / "data" / "league.db"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_positive_float(name: str, value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None
    if parsed <= 0:
        raise ValueError(f"{name} must be > 0, got {value!r}")
    return parsed


def _parse_positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if parsed < 1:
        raise ValueError(f"{name} must be >= 1, got {value!r}")
    return parsed


@dataclass(frozen=True)
class Settings:
    db_path: Path
    payment_service_base_url: str = "http://localhost:3001"
    payment_service_timeout: float = 10.0
    internal_webhook_token: str = ""
    jwt_secret_key: str = "league-dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    schedule_timezone: str = "UTC"
    dashboard_url: str = "/dashboard"
    payment_currency: str = "IDR"
    payment_due_minutes: int = 60
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        db_path = env.get("LEAGUE_DB_PATH", "").strip()
        return cls(
            db_path=Path(db_path) if db_path else _default_db_path(),
            payment_service_base_url=(
                env.get("PAYMENT_SERVICE_BASE_URL", "").strip() or "http://localhost:3001"
            ).rstrip("/"),
            payment_service_timeout=_parse_positive_float(
                "PAYMENT_SERVICE_TIMEOUT_SECONDS",
                env.get("PAYMENT_SERVICE_TIMEOUT_SECONDS", "10"),
            ),
            internal_webhook_token=env.get("INTERNAL_PAYMENT_WEBHOOK_TOKEN", "").strip(),
            jwt_secret_key=env.get("JWT_SECRET_KEY", cls.jwt_secret_key),
            schedule_timezone=env.get("LEAGUE_SCHEDULE_TZ", "").strip() or "UTC",
            dashboard_url=env.get("LEAGUE_DASHBOARD_URL", "").strip() or "/dashboard",
            payment_currency=env.get("LEAGUE_PAYMENT_CURRENCY", "").strip() or "IDR",
            payment_due_minutes=_parse_positive_int(
                "LEAGUE_PAYMENT_DUE_MINUTES",
                env.get("LEAGUE_PAYMENT_DUE_MINUTES", "60"),
            ),
            log_level=(env.get("LOG_LEVEL", "").strip() or "INFO").upper(),
            log_json=_parse_bool(env.get("LOG_JSON", "")),
        )
