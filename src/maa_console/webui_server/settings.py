from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ..config import REPO_ROOT, to_bool
from .references import FAIL_OPEN_ON_TRANSPORT_ERROR
from .runner import DEFAULT_FAILURE_CLEAR_SECONDS, DEFAULT_RUN_CLEAR_SECONDS, DEFAULT_SUCCESS_CLEAR_SECONDS
from .scheduler import DEFAULT_TIMEZONE

DEFAULT_BASE_PATH = "/maa"
DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_BIND_PORT = 4830
DEFAULT_BACKEND_URL = "http://127.0.0.1:3001/api/maa"
DEFAULT_LOOKUP_URL = "https://prts.maa.plus"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_CONFIG_ROOT = "data"
DEFAULT_LOG_LEVEL = "INFO"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class WebUISettings:
    bind_host: str
    bind_port: int
    base_path: str
    backend_url: str
    lookup_url: str
    request_timeout_seconds: float
    config_root: Path
    logs_dir: Path
    schedule_timezone: str
    resolver_fail_open: bool
    success_clear_seconds: float
    failure_clear_seconds: float
    run_clear_seconds: float
    log_level: str


def _normalize_base_path(raw: str) -> str:
    base = raw.strip() or DEFAULT_BASE_PATH
    if not base.startswith("/"):
        base = f"/{base}"
    return base.rstrip("/") or DEFAULT_BASE_PATH


def _env_text(name: str) -> str:
    return os.environ.get(name, "").strip()


def _clamp(name: str, value, min_val, max_val):
    if min_val is not None and value < min_val:
        print(f"[webui] WARNING: {name}={value} is below minimum {min_val}, using {min_val}", flush=True)
        return min_val
    if max_val is not None and value > max_val:
        print(f"[webui] WARNING: {name}={value} is above maximum {max_val}, using {max_val}", flush=True)
        return max_val
    return value


def _int_env(name: str, default: int, *, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env_text(name)
    return _clamp(name, int(raw), min_val, max_val) if raw else default


def _float_env(name: str, default: float, *, min_val: float = 0.0) -> float:
    raw = _env_text(name)
    return _clamp(name, float(raw), min_val, None) if raw else default


def _bool_env(name: str, default: bool) -> bool:
    raw = _env_text(name)
    return to_bool(raw) if raw else default


def _path_env(name: str, default: str) -> Path:
    path = Path(_env_text(name) or default)
    if not path.is_absolute():
        path = REPO_ROOT / path
    return path.resolve()


def _log_level_env(name: str) -> str:
    level = _env_text(name).upper() or DEFAULT_LOG_LEVEL
    if level not in _LOG_LEVELS:
        print(f"[webui] WARNING: {name}={level} is not a log level, using {DEFAULT_LOG_LEVEL}", flush=True)
        return DEFAULT_LOG_LEVEL
    return level


def load_webui_settings() -> WebUISettings:
    bind_host = _env_text("WEB_BIND_HOST") or DEFAULT_BIND_HOST
    bind_port = _int_env("WEB_BIND_PORT", DEFAULT_BIND_PORT, min_val=1, max_val=65535)
    base_path = _normalize_base_path(os.environ.get("WEB_BASE_PATH", DEFAULT_BASE_PATH))
    backend_url = _env_text("MAA_BACKEND_URL") or DEFAULT_BACKEND_URL
    lookup_url = _env_text("MAA_LOOKUP_URL") or DEFAULT_LOOKUP_URL
    schedule_timezone = _env_text("MAA_SCHEDULE_TIMEZONE") or DEFAULT_TIMEZONE

    return WebUISettings(
        bind_host=bind_host,
        bind_port=bind_port,
        base_path=base_path,
        backend_url=backend_url.rstrip("/"),
        lookup_url=lookup_url.rstrip("/"),
        request_timeout_seconds=_float_env(
            "MAA_REQUEST_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS, min_val=1.0
        ),
        config_root=_path_env("WEB_CONFIG_ROOT", DEFAULT_CONFIG_ROOT),
        logs_dir=REPO_ROOT / "logs" / "webui",
        schedule_timezone=schedule_timezone,
        resolver_fail_open=_bool_env("MAA_RESOLVER_FAIL_OPEN", FAIL_OPEN_ON_TRANSPORT_ERROR),
        success_clear_seconds=_float_env("MAA_STATUS_SUCCESS_CLEAR_SECONDS", DEFAULT_SUCCESS_CLEAR_SECONDS),
        failure_clear_seconds=_float_env("MAA_STATUS_FAILURE_CLEAR_SECONDS", DEFAULT_FAILURE_CLEAR_SECONDS),
        run_clear_seconds=_float_env("MAA_RUN_CLEAR_SECONDS", DEFAULT_RUN_CLEAR_SECONDS),
        log_level=_log_level_env("MAA_LOG_LEVEL"),
    )
