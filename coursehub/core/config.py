from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_FALSY = ("0", "false", "no", "off")
_TRUTHY = ("1", "true", "yes", "on")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _parse_positive(name: str, raw: str, cast: type[int] | type[float]) -> int | float:
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {raw!r})")
    return value


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    frontend_url: str = "http://localhost:3000"
    issuer_name: str = "Online Course Platform"
    # Score reported when a learner has no quiz or assignment scores yet.
    # None disables the placeholder (the score is then 0).
    default_final_score: int | None = 85
    lookup_timeout_seconds: float = 5.0
    lock_timeout_seconds: float = 10.0
    max_write_attempts: int = 3
    max_identity_attempts: int = 5

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    default_score_raw = _getenv("DEFAULT_FINAL_SCORE", "85").lower()
    if default_score_raw in _FALSY or default_score_raw in ("", "none"):
        default_final_score = None
    else:
        try:
            default_final_score = int(default_score_raw)
        except ValueError:
            raise ValueError(
                f"DEFAULT_FINAL_SCORE must be 0-100 or 'off' (got {default_score_raw!r})"
            ) from None
        if not 0 <= default_final_score <= 100:
            raise ValueError(
                f"DEFAULT_FINAL_SCORE must be 0-100 or 'off' (got {default_score_raw!r})"
            )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_parse_bool("LOG_JSON", _getenv("LOG_JSON", "false")),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        frontend_url=_getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/"),
        issuer_name=_getenv("ISSUER_NAME", "Online Course Platform"),
        default_final_score=default_final_score,
        lookup_timeout_seconds=float(
            _parse_positive(
                "LOOKUP_TIMEOUT_SECONDS", _getenv("LOOKUP_TIMEOUT_SECONDS", "5"), float
            )
        ),
        lock_timeout_seconds=float(
            _parse_positive(
                "LOCK_TIMEOUT_SECONDS", _getenv("LOCK_TIMEOUT_SECONDS", "10"), float
            )
        ),
        max_write_attempts=int(
            _parse_positive(
                "MAX_WRITE_ATTEMPTS", _getenv("MAX_WRITE_ATTEMPTS", "3"), int
            )
        ),
        max_identity_attempts=int(
            _parse_positive(
                "MAX_IDENTITY_ATTEMPTS", _getenv("MAX_IDENTITY_ATTEMPTS", "5"), int
            )
        ),
    )


SETTINGS = load_settings()
