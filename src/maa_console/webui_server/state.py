from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from .tasks import TaskRegistry

if TYPE_CHECKING:
    from .config_files import UserConfigStore
    from .references import ReferenceResolution

logger = logging.getLogger(__name__)

TASK_CONFIG_TYPE = "task-config"
TASK_CONFIG_VERSION = 1
DEFAULT_SCHEDULE_TIMES = ("08:00", "14:00", "20:00")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def parse_schedule_time(value: str) -> tuple[int, int]:
    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Schedule time must be HH:MM, got {value!r}.")
    return int(match.group(1)), int(match.group(2))


class ControllerState:
    """Owned state of the control surface.

    Every mutation goes through a named transition: editing a task's input
    drops any reference resolution bound to it, and
    ``is_running`` / ``is_resolving`` are independent single-flight flags.
    """

    def __init__(self) -> None:
        self.inputs: dict[str, str] = {}
        self.advanced: dict[str, dict[str, Any]] = {}
        self.dry_run: dict[str, bool] = {}
        self.resolutions: dict[str, ReferenceResolution] = {}
        self.is_running = False
        self.active_task_id: str | None = None
        self.status_message = ""
        self.status_updated_at: str | None = None
        self.is_resolving = False

    # -- user edits ---------------------------------------------------------

    def input_for(self, task_id: str) -> str:
        return self.inputs.get(task_id, "")

    def set_input(self, task_id: str, text: str) -> None:
        self.inputs[task_id] = text
        self.resolutions.pop(task_id, None)

    def advanced_for(self, task_id: str) -> dict[str, Any]:
        return dict(self.advanced.get(task_id, {}))

    def set_advanced(self, task_id: str, key: str, value: Any) -> None:
        values = self.advanced.setdefault(task_id, {})
        if value is None:
            values.pop(key, None)
        else:
            values[key] = value

    def clear_advanced(self, task_id: str) -> None:
        self.advanced.pop(task_id, None)

    def dry_run_for(self, task_id: str) -> bool:
        return bool(self.dry_run.get(task_id, False))

    def set_dry_run(self, task_id: str, enabled: bool) -> None:
        self.dry_run[task_id] = bool(enabled)

    # -- reference resolution -----------------------------------------------

    def resolution_for(self, task_id: str) -> ReferenceResolution | None:
        return self.resolutions.get(task_id)

    def bind_resolution(self, task_id: str, resolution: ReferenceResolution) -> bool:
        """Attach ``resolution`` unless the input changed while it was resolved."""
        if self.input_for(task_id) != resolution.source_text:
            return False
        self.resolutions[task_id] = resolution
        return True

    def begin_resolve(self) -> bool:
        if self.is_resolving:
            return False
        self.is_resolving = True
        return True

    def finish_resolve(self) -> None:
        self.is_resolving = False

    # -- execution lifecycle ------------------------------------------------

    def begin_run(self, task_id: str) -> bool:
        if self.is_running:
            return False
        self.is_running = True
        self.active_task_id = task_id
        return True

    def finish_run(self) -> None:
        self.is_running = False
        self.active_task_id = None

    def set_status(self, message: str) -> None:
        self.status_message = message
        self.status_updated_at = utc_now_iso()

    def clear_status(self) -> None:
        self.set_status("")

    # -- persistence helpers ------------------------------------------------

    def restore(self, category_tasks: dict[str, Any], registry: TaskRegistry) -> None:
        known = set(registry.task_ids)
        for section in category_tasks.values():
            if not isinstance(section, dict):
                continue
            for task_id, text in dict(section.get("inputs") or {}).items():
                if task_id in known and isinstance(text, str):
                    self.inputs[task_id] = text
            for task_id, values in dict(section.get("advanced") or {}).items():
                if task_id in known and isinstance(values, dict):
                    self.advanced[task_id] = dict(values)
            for task_id, enabled in dict(section.get("dry_run") or {}).items():
                if task_id in known:
                    self.dry_run[task_id] = bool(enabled)

    def export(self, registry: TaskRegistry) -> dict[str, dict[str, Any]]:
        payload: dict[str, dict[str, Any]] = {}
        for category in registry.categories:
            ids = [task.task_id for task in category.tasks]
            payload[category.category_id] = {
                "inputs": {task_id: self.inputs[task_id] for task_id in ids if task_id in self.inputs},
                "advanced": {task_id: dict(self.advanced[task_id]) for task_id in ids if self.advanced.get(task_id)},
                "dry_run": {task_id: self.dry_run[task_id] for task_id in ids if task_id in self.dry_run},
            }
        return payload

    def snapshot(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "active_task_id": self.active_task_id,
            "status_message": self.status_message,
            "status_updated_at": self.status_updated_at,
            "is_resolving": self.is_resolving,
            "inputs": dict(self.inputs),
            "advanced": {task_id: dict(values) for task_id, values in self.advanced.items()},
            "dry_run": dict(self.dry_run),
            "resolutions": {task_id: item.to_dict() for task_id, item in self.resolutions.items()},
        }


# ---------------------------------------------------------------------------
# Configuration state
# ---------------------------------------------------------------------------

def migrate_task_config(payload: dict[str, Any], version: int) -> dict[str, Any]:
    """Upgrade a persisted task-config payload to the current version."""
    migrated = dict(payload)
    if version < 1:
        if migrated.get("scheduleEnabled") is None:
            migrated["scheduleEnabled"] = False
        if migrated.get("scheduleTimes") is None:
            migrated["scheduleTimes"] = list(DEFAULT_SCHEDULE_TIMES)
    return migrated


@dataclass
class TaskConfigState:
    automation_tasks: list[dict[str, Any]] = field(default_factory=list)
    category_tasks: dict[str, dict[str, Any]] = field(default_factory=dict)
    schedule_enabled: bool = False
    schedule_times: list[str] = field(default_factory=lambda: list(DEFAULT_SCHEDULE_TIMES))
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TaskConfigState:
        known = {"automationTasks", "categoryTasks", "scheduleEnabled", "scheduleTimes"}
        return cls(
            automation_tasks=[dict(item) for item in payload.get("automationTasks") or [] if isinstance(item, dict)],
            category_tasks={
                str(key): dict(value)
                for key, value in dict(payload.get("categoryTasks") or {}).items()
                if isinstance(value, dict)
            },
            schedule_enabled=bool(payload.get("scheduleEnabled", False)),
            schedule_times=(
                list(DEFAULT_SCHEDULE_TIMES)
                if payload.get("scheduleTimes") is None
                else [str(item) for item in payload["scheduleTimes"]]
            ),
            extra={key: value for key, value in payload.items() if key not in known},
        )

    def to_payload(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload.update(
            {
                "automationTasks": [dict(item) for item in self.automation_tasks],
                "categoryTasks": {key: dict(value) for key, value in self.category_tasks.items()},
                "scheduleEnabled": self.schedule_enabled,
                "scheduleTimes": list(self.schedule_times),
            }
        )
        return payload

    @classmethod
    def hydrate(cls, store: UserConfigStore) -> TaskConfigState:
        try:
            raw = store.load(TASK_CONFIG_TYPE)
        except (ValueError, OSError) as exc:
            logger.warning("task config is unreadable, starting from defaults: %s", exc)
            return cls()
        if not isinstance(raw, dict):
            return cls()
        if isinstance(raw.get("state"), dict) and "version" in raw:
            version = int(raw.get("version") or 0)
            payload = dict(raw["state"])
        else:
            version = 0
            payload = dict(raw)
        upgraded = cls.from_payload(migrate_task_config(payload, version))
        if version < TASK_CONFIG_VERSION:
            upgraded.save(store)
        return upgraded

    def save(self, store: UserConfigStore) -> None:
        store.save(TASK_CONFIG_TYPE, {"version": TASK_CONFIG_VERSION, "state": self.to_payload()})

    def set_schedule(self, enabled: bool, times: list[str]) -> None:
        normalized: list[str] = []
        for value in times:
            hour, minute = parse_schedule_time(value)
            text = f"{hour:02d}:{minute:02d}"
            if text not in normalized:
                normalized.append(text)
        self.schedule_enabled = bool(enabled)
        self.schedule_times = normalized

    def enabled_flow(self) -> list[dict[str, Any]]:
        return [item for item in self.automation_tasks if item.get("enabled", True)]
