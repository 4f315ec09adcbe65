"""
Environment-driven configuration.

Every setting is read on demand so tests can monkeypatch the environment.
Malformed numeric/bool values fall back to the default instead of failing.
"""

from __future__ import annotations

import os

DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def pool_min_size() -> int:
    return max(_env_int("DB_POOL_MIN_SIZE", 0), 0)


def pool_max_size() -> int:
    return max(_env_int("DB_POOL_MAX_SIZE", 30), 1)


def command_timeout_s() -> float:
    return _env_float("DB_COMMAND_TIMEOUT_S", 30.0)


def bus_request_timeout_s() -> float:
    return _env_float("BUS_REQUEST_TIMEOUT_S", 30.0)


def rest_api_enabled() -> bool:
    return _env_bool("ENABLE_REST_API", True)


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "").strip()
    if not raw:
        return list(DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def log_level() -> str:
    return _env_str("LOG_LEVEL", "INFO")


def log_format() -> str:
    return _env_str("LOG_FORMAT", "text").lower()


def http_host() -> str:
    return _env_str("HTTP_HOST", "0.0.0.0")


def http_port() -> int:
    return _env_int("HTTP_PORT", 8081)
