from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from .composer import compose_arguments, compose_task_config
from .errors import TransportError
from .state import ControllerState
from .tasks import TaskRegistry

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_CLEAR_SECONDS = 1.5
DEFAULT_FAILURE_CLEAR_SECONDS = 2.0
DEFAULT_RUN_CLEAR_SECONDS = 1.0


class ExecutionBackend(Protocol):
    async def execute(self, command: str, arguments: str, task_config: str | None = None) -> Any: ...


@dataclass(frozen=True)
class ExecutionOutcome:
    task_id: str
    command: str
    arguments: str
    success: bool
    status: str
    error: str | None = None
    data: Any = None
    task_config: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "command": self.command,
            "arguments": self.arguments,
            "success": self.success,
            "status": self.status,
            "error": self.error,
            "data": self.data,
            "task_config": self.task_config,
        }


class ExecutionCoordinator:
    """Runs one task at a time against the backend and drives status messages.

    The run flag and the status message clear on separate timers. Each new
    status message cancels the pending status-clear timer, so a stale timer
    from an earlier run never blanks a newer message.
    """

    def __init__(
        self,
        state: ControllerState,
        registry: TaskRegistry,
        backend: ExecutionBackend,
        *,
        success_clear_seconds: float = DEFAULT_SUCCESS_CLEAR_SECONDS,
        failure_clear_seconds: float = DEFAULT_FAILURE_CLEAR_SECONDS,
        run_clear_seconds: float = DEFAULT_RUN_CLEAR_SECONDS,
    ) -> None:
        self.state = state
        self.registry = registry
        self.backend = backend
        self.success_clear_seconds = success_clear_seconds
        self.failure_clear_seconds = failure_clear_seconds
        self.run_clear_seconds = run_clear_seconds
        self._status_timer: asyncio.TimerHandle | None = None
        self._run_timer: asyncio.TimerHandle | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    def flash(self, message: str, clear_after: float | None = None) -> None:
        """Show ``message`` and, when ``clear_after`` is set, blank it later."""
        self._cancel_status_timer()
        self.state.set_status(message)
        if clear_after is not None:
            loop = asyncio.get_running_loop()
            self._status_timer = loop.call_later(clear_after, self._clear_status)

    def preview(self, task_id: str) -> str:
        task = self.registry.get(task_id)
        return compose_arguments(
            task,
            self.state.input_for(task_id),
            self.state.advanced_for(task_id),
            dry_run=self.state.dry_run_for(task_id),
            resolution=self.state.resolution_for(task_id),
        )

    async def execute(
        self,
        task_id: str,
        *,
        raw_input: str | None = None,
        advanced: Mapping[str, Any] | None = None,
        dry_run: bool | None = None,
    ) -> ExecutionOutcome | None:
        """Compose and run ``task_id``; return ``None`` if a run is active.

        ``raw_input``, ``advanced`` and ``dry_run`` override the values held
        in the controller state, which is how scheduled flows run their own
        entries.
        """
        task = self.registry.get(task_id)
        if not self.state.begin_run(task_id):
            logger.info("execute %s rejected: %s is still running", task_id, self.state.active_task_id)
            return None
        self._idle.clear()
        self._cancel_run_timer()
        self.flash(f"Executing: {task.title}")

        try:
            values = self.state.advanced_for(task_id) if advanced is None else advanced
            arguments = compose_arguments(
                task,
                self.state.input_for(task_id) if raw_input is None else raw_input,
                values,
                dry_run=self.state.dry_run_for(task_id) if dry_run is None else dry_run,
                resolution=self.state.resolution_for(task_id) if raw_input is None else None,
            )
            task_config = compose_task_config(task, values)
            logger.info("run starting: task=%s command=%s arguments=%r", task_id, task.command, arguments)
            try:
                result = await self.backend.execute(task.command, arguments, task_config=task_config)
            except TransportError as exc:
                return self._network_failure(task_id, task.command, arguments, task_config, exc)
            except Exception as exc:
                logger.exception("run failed: task=%s unexpected backend error", task_id)
                return self._network_failure(task_id, task.command, arguments, task_config, exc)

            if result.success:
                status = f"✓ {task.title} succeeded"
                self.flash(status, self.success_clear_seconds)
                logger.info("run succeeded: task=%s", task_id)
                return ExecutionOutcome(
                    task_id, task.command, arguments, True, status, data=result.data, task_config=task_config
                )

            status = f"❌ Execution failed: {result.error}"
            self.flash(status, self.failure_clear_seconds)
            logger.error("run failed: task=%s error=%s", task_id, result.error)
            return ExecutionOutcome(
                task_id,
                task.command,
                arguments,
                False,
                status,
                error=result.error,
                data=result.data,
                task_config=task_config,
            )
        finally:
            self._schedule_run_clear()

    def _network_failure(
        self, task_id: str, command: str, arguments: str, task_config: str | None, exc: Exception
    ) -> ExecutionOutcome:
        detail = str(exc) or type(exc).__name__
        status = f"❌ Network error: {detail}"
        self.flash(status, self.failure_clear_seconds)
        logger.error("run failed: task=%s network error: %s", task_id, detail)
        return ExecutionOutcome(task_id, command, arguments, False, status, error=detail, task_config=task_config)

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def shutdown(self) -> None:
        self._cancel_status_timer()
        self._cancel_run_timer()

    def _schedule_run_clear(self) -> None:
        self._cancel_run_timer()
        loop = asyncio.get_running_loop()
        self._run_timer = loop.call_later(self.run_clear_seconds, self._clear_run)

    def _clear_run(self) -> None:
        self._run_timer = None
        self.state.finish_run()
        self._idle.set()

    def _clear_status(self) -> None:
        self._status_timer = None
        self.state.clear_status()

    def _cancel_status_timer(self) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None

    def _cancel_run_timer(self) -> None:
        if self._run_timer is not None:
            self._run_timer.cancel()
            self._run_timer = None
