from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..composer import compose_task_config
from ..deps import Services, require_services, require_task
from ..errors import BackendError, ResolverBusyError, TransportError, ValidationError
from ..schemas import AdvancedUpdateRequest, DryRunRequest, TaskInputRequest

router = APIRouter(tags=["tasks"])


@router.get("/tasks")
async def list_tasks(services: Services = Depends(require_services)) -> dict[str, Any]:
    return {"categories": services.registry.describe_categories()}


@router.get("/controller")
async def get_controller(services: Services = Depends(require_services)) -> dict[str, Any]:
    return services.state.snapshot()


@router.get("/status")
async def get_status(services: Services = Depends(require_services)) -> dict[str, Any]:
    state = services.state
    return {
        "is_running": state.is_running,
        "active_task_id": state.active_task_id,
        "status_message": state.status_message,
        "is_resolving": state.is_resolving,
    }


@router.put("/tasks/{task_id}/input")
async def put_task_input(
    task_id: str,
    payload: TaskInputRequest,
    services: Services = Depends(require_services),
) -> dict[str, Any]:
    task_id = require_task(services, task_id)
    services.state.set_input(task_id, payload.text)
    return {"task_id": task_id, "text": payload.text, "resolution": None}


@router.put("/tasks/{task_id}/advanced")
async def put_task_advanced(
    task_id: str,
    payload: AdvancedUpdateRequest,
    services: Services = Depends(require_services),
) -> dict[str, Any]:
    task_id = require_task(services, task_id)
    known = {option.key for option in services.registry.options_for(task_id)}
    unknown = sorted(set(payload.values) - known)
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unsupported options: {', '.join(unknown)}")
    if payload.replace:
        services.state.clear_advanced(task_id)
    for key, value in payload.values.items():
        services.state.set_advanced(task_id, key, value)
    return {"task_id": task_id, "values": services.state.advanced_for(task_id)}


@router.put("/tasks/{task_id}/dry-run")
async def put_task_dry_run(
    task_id: str,
    payload: DryRunRequest,
    services: Services = Depends(require_services),
) -> dict[str, Any]:
    task_id = require_task(services, task_id)
    if payload.enabled and not services.registry.get(task_id).supports_dry_run:
        raise HTTPException(status_code=422, detail=f"Task '{task_id}' does not support dry-run.")
    services.state.set_dry_run(task_id, payload.enabled)
    return {"task_id": task_id, "enabled": services.state.dry_run_for(task_id)}


@router.get("/tasks/{task_id}/preview")
async def preview_task(task_id: str, services: Services = Depends(require_services)) -> dict[str, Any]:
    task_id = require_task(services, task_id)
    task = services.registry.get(task_id)
    return {
        "task_id": task_id,
        "command": task.command,
        "arguments": services.coordinator.preview(task_id),
        "task_config": compose_task_config(task, services.state.advanced_for(task_id)),
    }


@router.post("/tasks/{task_id}/resolve")
async def resolve_task_reference(
    task_id: str,
    services: Services = Depends(require_services),
) -> dict[str, Any]:
    task_id = require_task(services, task_id)
    try:
        resolution = await services.resolver.resolve(task_id)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ResolverBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except (BackendError, TransportError) as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    bound = services.state.resolution_for(task_id) is resolution
    return {"task_id": task_id, "resolution": resolution.to_dict(), "bound": bound}


@router.post("/tasks/{task_id}/execute")
async def execute_task(task_id: str, services: Services = Depends(require_services)) -> dict[str, Any]:
    task_id = require_task(services, task_id)
    outcome = await services.coordinator.execute(task_id)
    if outcome is None:
        raise HTTPException(status_code=409, detail="Another task is already running.")
    return outcome.to_dict()
