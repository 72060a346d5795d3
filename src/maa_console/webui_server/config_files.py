from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 20
_CONFIG_TYPE_RE = re.compile(r"^[a-z0-9][a-z0-9_-]{0,63}$")


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


class UserConfigStore:
    """JSON document per config type under ``<root>/user-configs``.

    Every overwrite keeps the previous document in ``.history`` and trims
    that history to ``max_history`` entries per type.
    """

    def __init__(self, root: Path, max_history: int = DEFAULT_MAX_HISTORY):
        self.root = root
        self.max_history = max_history

    @property
    def storage_dir(self) -> Path:
        return self.root / "user-configs"

    @property
    def history_dir(self) -> Path:
        return self.storage_dir / ".history"

    def list_types(self) -> list[dict[str, Any]]:
        if not self.storage_dir.exists():
            return []
        payload: list[dict[str, Any]] = []
        for path in sorted(self.storage_dir.glob("*.json")):
            payload.append(
                {
                    "type": path.stem,
                    "size_bytes": path.stat().st_size,
                    "updated_at": datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)
                    .isoformat()
                    .replace("+00:00", "Z"),
                }
            )
        return payload

    def load(self, config_type: str) -> Any:
        path = self._path(config_type)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def load_all(self) -> dict[str, Any]:
        configs: dict[str, Any] = {}
        for item in self.list_types():
            try:
                data = self.load(item["type"])
            except (ValueError, OSError) as exc:
                logger.warning("skipping unreadable user config %s: %s", item["type"], exc)
                continue
            if data is not None:
                configs[item["type"]] = data
        return configs

    def save(self, config_type: str, data: Any) -> dict[str, Any]:
        path = self._path(config_type)
        path.parent.mkdir(parents=True, exist_ok=True)

        if path.exists():
            self.history_dir.mkdir(parents=True, exist_ok=True)
            backup_path = self.history_dir / f"{config_type}.{_utc_stamp()}.json"
            backup_path.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")
            self._rotate_history(config_type)

        temp_path = path.with_suffix(path.suffix + ".tmp")
        serialized = json.dumps(data, indent=2, ensure_ascii=False) + "\n"
        temp_path.write_text(serialized, encoding="utf-8")
        temp_path.replace(path)
        return {"type": config_type, "content": data}

    def delete(self, config_type: str) -> bool:
        path = self._path(config_type)
        if not path.exists():
            return False
        path.unlink()
        logger.info("user config %s deleted", config_type)
        return True

    def _path(self, config_type: str) -> Path:
        if not _CONFIG_TYPE_RE.match(config_type or ""):
            raise ValueError(f"Invalid config type '{config_type}'.")
        return self.storage_dir / f"{config_type}.json"

    def _rotate_history(self, config_type: str) -> None:
        if self.max_history <= 0:
            return
        backups = sorted(self.history_dir.glob(f"{config_type}.*.json"))
        excess = len(backups) - self.max_history
        for path in backups[:max(excess, 0)]:
            try:
                path.unlink()
            except OSError:
                continue
