from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..deps import Services, require_services

router = APIRouter(tags=["schedules"])


@router.get("/schedule")
async def get_schedule(services: Services = Depends(require_services)) -> dict[str, Any]:
    config = services.task_config
    return {
        "enabled": config.schedule_enabled,
        "times": list(config.schedule_times),
        "jobs": services.scheduler.list_jobs(),
        "last_summary": services.scheduler.last_summary,
    }


@router.get("/schedule/status")
async def get_schedule_status(services: Services = Depends(require_services)) -> dict[str, Any]:
    return services.scheduler.status()


@router.post("/schedule/run-now")
async def run_schedule_now(services: Services = Depends(require_services)) -> dict[str, Any]:
    if services.state.is_running or services.scheduler.progress.is_running:
        raise HTTPException(status_code=409, detail="Another task is already running.")
    if not services.task_config.enabled_flow():
        raise HTTPException(status_code=422, detail="The task flow has no enabled entries.")
    summary = await services.scheduler.run_flow()
    if summary is None:
        raise HTTPException(status_code=409, detail="The task flow is already running.")
    return {"success": not summary["failed"], "summary": summary}


@router.post("/schedule/stop")
async def stop_schedule(services: Services = Depends(require_services)) -> dict[str, Any]:
    if not services.scheduler.request_stop():
        raise HTTPException(status_code=409, detail="No task flow is running.")
    return {"success": True, "status": services.scheduler.status()}
