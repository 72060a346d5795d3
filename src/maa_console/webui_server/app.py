from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import RedirectResponse, Response

from .. import __version__
from .backend import CopilotLookupClient, MaaBackendClient
from .config_files import UserConfigStore
from .deps import Services
from .errors import TransportError
from .references import JobLookup, ReferenceResolver
from .routers import config as config_router
from .routers import meta as meta_router
from .routers import schedules as schedules_router
from .routers import tasks as tasks_router
from .runner import ExecutionCoordinator
from .scheduler import ScheduleService
from .settings import load_webui_settings
from .state import ControllerState, TaskConfigState
from .tasks import TaskRegistry

logger = logging.getLogger(__name__)


async def _probe_backend_version(services: Services) -> None:
    try:
        services.backend_version = await services.backend.get_version()
    except TransportError as exc:
        logger.debug("backend version probe failed: %s", exc)


def create_app(
    *,
    backend: MaaBackendClient | None = None,
    lookup: JobLookup | None = None,
) -> FastAPI:
    settings = load_webui_settings()
    registry = TaskRegistry()
    config_store = UserConfigStore(settings.config_root)
    task_config = TaskConfigState.hydrate(config_store)

    state = ControllerState()
    state.restore(task_config.category_tasks, registry)

    if backend is None:
        backend = MaaBackendClient(settings.backend_url, timeout=settings.request_timeout_seconds)
    if lookup is None:
        lookup = CopilotLookupClient(settings.lookup_url, timeout=settings.request_timeout_seconds)

    coordinator = ExecutionCoordinator(
        state,
        registry,
        backend,
        success_clear_seconds=settings.success_clear_seconds,
        failure_clear_seconds=settings.failure_clear_seconds,
        run_clear_seconds=settings.run_clear_seconds,
    )
    resolver = ReferenceResolver(
        lookup,
        state,
        fail_open=settings.resolver_fail_open,
        notify=coordinator.flash,
    )
    scheduler = ScheduleService(coordinator, lambda: task_config, timezone=settings.schedule_timezone)

    services = Services(
        settings=settings,
        registry=registry,
        state=state,
        coordinator=coordinator,
        resolver=resolver,
        backend=backend,
        config_store=config_store,
        task_config=task_config,
        scheduler=scheduler,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services
        services.scheduler.start()
        probe = asyncio.create_task(_probe_backend_version(services))
        services.background.add(probe)
        probe.add_done_callback(services.background.discard)
        print(
            f"[start] webui-server listening on http://{settings.bind_host}:{settings.bind_port}{settings.base_path}",
            flush=True,
        )
        try:
            yield
        finally:
            for task in list(services.background):
                task.cancel()
            services.scheduler.shutdown()
            services.coordinator.shutdown()

    app = FastAPI(title="MAA Console", version=__version__, lifespan=lifespan)
    api_prefix = f"{settings.base_path}/api/v1"

    @app.get("/")
    async def root_redirect() -> Response:
        return RedirectResponse(url=f"{api_prefix}/tasks", status_code=307)

    for module in (meta_router, tasks_router, config_router, schedules_router):
        app.include_router(module.router, prefix=api_prefix)

    return app
