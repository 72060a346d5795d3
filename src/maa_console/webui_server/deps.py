from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException, Request

from .backend import MaaBackendClient
from .config_files import UserConfigStore
from .references import ReferenceResolver
from .runner import ExecutionCoordinator
from .scheduler import ScheduleService
from .settings import WebUISettings
from .state import ControllerState, TaskConfigState
from .tasks import TaskRegistry


@dataclass
class Services:
    settings: WebUISettings
    registry: TaskRegistry
    state: ControllerState
    coordinator: ExecutionCoordinator
    resolver: ReferenceResolver
    backend: MaaBackendClient
    config_store: UserConfigStore
    task_config: TaskConfigState
    scheduler: ScheduleService
    backend_version: dict[str, Any] | None = None
    background: set[Any] = field(default_factory=set)


def require_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Web UI services are not initialized.")
    return services


def require_task(services: Services, task_id: str) -> str:
    task_id = task_id.strip()
    if task_id not in services.registry.task_ids:
        raise HTTPException(status_code=404, detail=f"Unknown task '{task_id}'.")
    return task_id
