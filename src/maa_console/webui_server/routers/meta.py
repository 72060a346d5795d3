from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ... import __version__
from ..deps import Services, require_services

router = APIRouter(tags=["meta"])


@router.get("/health")
async def health(services: Services = Depends(require_services)) -> dict[str, Any]:
    return {"ok": True, "base_path": services.settings.base_path, "version": __version__}


@router.get("/version")
async def get_version(services: Services = Depends(require_services)) -> dict[str, Any]:
    return {"app_version": __version__, "backend": services.backend_version}
