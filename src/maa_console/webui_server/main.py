from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

import uvicorn

from .app import create_app
from .settings import WebUISettings, load_webui_settings

LOG_FILE_NAME = "server.log"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUP_COUNT = 5
_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "apscheduler")


def configure_logging(log_dir: Path, level: str = "INFO") -> Path:
    """Log to a rotating file under ``log_dir``; only warnings reach stderr.

    Returns the log file path.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME
    formatter = logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")

    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)

    stderr_handler = logging.StreamHandler()
    stderr_handler.setFormatter(formatter)
    stderr_handler.setLevel(logging.WARNING)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(file_handler)
    root.addHandler(stderr_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    return log_file


def _print_banner(settings: WebUISettings, log_file: Path) -> None:
    print(f"[webui] backend: {settings.backend_url}", flush=True)
    print(f"[webui] job lookup: {settings.lookup_url}", flush=True)
    print(f"[webui] config root: {settings.config_root}", flush=True)
    print(f"[webui] logging to {log_file}", flush=True)


def main() -> int:
    settings = load_webui_settings()
    log_file = configure_logging(settings.logs_dir, settings.log_level)
    _print_banner(settings, log_file)

    uvicorn.run(
        create_app(),
        host=settings.bind_host,
        port=settings.bind_port,
        log_config=None,
        access_log=False,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
