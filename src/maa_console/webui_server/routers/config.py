from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import Services, require_services
from ..schemas import TaskConfigUpdateRequest, UserConfigWriteRequest
from ..state import TASK_CONFIG_TYPE

router = APIRouter(tags=["config"])


def _task_config_payload(services: Services) -> dict[str, Any]:
    return {
        "config": services.task_config.to_payload(),
        "scheduled": services.scheduler.list_jobs(),
    }


@router.get("/user-configs")
async def list_user_configs(services: Services = Depends(require_services)) -> dict[str, Any]:
    return {"items": services.config_store.list_types(), "configs": services.config_store.load_all()}


@router.get("/user-config/{config_type}")
async def get_user_config(config_type: str, services: Services = Depends(require_services)) -> dict[str, Any]:
    try:
        data = services.config_store.load(config_type)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"success": True, "data": data}


@router.post("/user-config/{config_type}")
async def post_user_config(
    config_type: str,
    payload: UserConfigWriteRequest,
    services: Services = Depends(require_services),
) -> dict[str, Any]:
    if config_type == TASK_CONFIG_TYPE:
        raise HTTPException(status_code=409, detail="Update the task configuration through /task-config.")
    try:
        services.config_store.save(config_type, payload.data)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"success": True}


@router.delete("/user-config/{config_type}")
async def delete_user_config(config_type: str, services: Services = Depends(require_services)) -> dict[str, Any]:
    try:
        deleted = services.config_store.delete(config_type)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"success": True, "deleted": deleted}


@router.get("/task-config")
async def get_task_config(services: Services = Depends(require_services)) -> dict[str, Any]:
    return _task_config_payload(services)


@router.put("/task-config")
async def put_task_config(
    payload: TaskConfigUpdateRequest,
    services: Services = Depends(require_services),
) -> dict[str, Any]:
    config = services.task_config
    if payload.automation_tasks is not None:
        known = set(services.registry.task_ids)
        unknown = sorted({item.task_id for item in payload.automation_tasks} - known)
        if unknown:
            raise HTTPException(status_code=422, detail=f"Unknown tasks: {', '.join(unknown)}")
        config.automation_tasks = [item.model_dump() for item in payload.automation_tasks]
    if payload.schedule_enabled is not None or payload.schedule_times is not None:
        enabled = config.schedule_enabled if payload.schedule_enabled is None else payload.schedule_enabled
        times = config.schedule_times if payload.schedule_times is None else payload.schedule_times
        config.set_schedule(enabled, times)
    config.save(services.config_store)
    services.scheduler.sync(config)
    return _task_config_payload(services)


@router.post("/controller/save")
async def save_controller(services: Services = Depends(require_services)) -> dict[str, Any]:
    config = services.task_config
    config.category_tasks = services.state.export(services.registry)
    config.save(services.config_store)
    return {"success": True, "category_tasks": config.category_tasks}
