from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .runner import ExecutionCoordinator
from .state import TaskConfigState, parse_schedule_time, utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Shanghai"
_JOB_PREFIX = "task-flow-"

ConfigProvider = Callable[[], TaskConfigState]


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class FlowProgress:
    is_running: bool = False
    current_step: int = -1
    total_steps: int = 0
    current_task: str = ""
    message: str = ""
    start_time: str | None = None
    should_stop: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ScheduleService:
    def __init__(
        self,
        coordinator: ExecutionCoordinator,
        config_provider: ConfigProvider,
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.coordinator = coordinator
        self.config_provider = config_provider
        self.timezone = timezone
        self.scheduler = AsyncIOScheduler(timezone=timezone)
        self.last_summary: dict[str, Any] | None = None
        self.progress = FlowProgress()

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
        self.sync(self.config_provider())

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def sync(self, config: TaskConfigState) -> list[str]:
        """Replace the daily flow jobs with the ones ``config`` asks for."""
        for job in self.scheduler.get_jobs():
            if job.id.startswith(_JOB_PREFIX):
                job.remove()
        if not config.schedule_enabled:
            return []

        accepted: list[str] = []
        for time_text in config.schedule_times:
            try:
                trigger = self._build_trigger(time_text)
            except ValueError as exc:
                logger.warning("skipping schedule time %r: %s", time_text, exc)
                continue
            self.scheduler.add_job(
                func=self.run_flow,
                trigger=trigger,
                id=f"{_JOB_PREFIX}{time_text}",
                replace_existing=True,
                misfire_grace_time=60,
                coalesce=True,
                max_instances=1,
            )
            accepted.append(time_text)
        logger.info("task flow scheduled at %s", ", ".join(accepted) or "no valid times")
        return accepted

    def list_jobs(self) -> list[dict[str, Any]]:
        jobs = []
        for job in self.scheduler.get_jobs():
            if not job.id.startswith(_JOB_PREFIX):
                continue
            jobs.append(
                {
                    "job_id": job.id,
                    "time": job.id[len(_JOB_PREFIX):],
                    "next_run_at": _iso(getattr(job, "next_run_time", None)),
                }
            )
        return sorted(jobs, key=lambda item: item["time"])

    def _build_trigger(self, time_text: str) -> CronTrigger:
        hour, minute = parse_schedule_time(time_text)
        return CronTrigger(hour=hour, minute=minute, timezone=self.timezone)

    async def run_flow(self) -> dict[str, Any] | None:
        """Run every enabled flow entry in order, one at a time.

        Returns ``None`` without running anything when a flow is already in
        progress. A stop request takes effect before the next entry starts.
        """
        if self.progress.is_running:
            logger.info("task flow already running; ignoring new trigger")
            return None
        config = self.config_provider()
        entries = config.enabled_flow()
        known = set(self.coordinator.registry.task_ids)
        summary: dict[str, Any] = {"succeeded": [], "failed": [], "skipped": [], "stopped": False}
        self.progress = FlowProgress(is_running=True, total_steps=len(entries), start_time=utc_now_iso())
        try:
            for step, entry in enumerate(entries):
                if self.progress.should_stop:
                    summary["stopped"] = True
                    logger.info("task flow stopped before step %d of %d", step + 1, len(entries))
                    break
                task_id = str(entry.get("task_id") or "")
                self.progress.current_step = step
                self.progress.current_task = task_id
                if task_id not in known:
                    logger.warning("flow entry %s skipped: unknown task '%s'", entry.get("id"), task_id)
                    summary["skipped"].append(task_id)
                    continue
                self.progress.message = f"Running {self.coordinator.registry.get(task_id).title}"
                await self.coordinator.wait_idle()
                outcome = await self.coordinator.execute(
                    task_id,
                    raw_input=str(entry.get("input") or ""),
                    advanced=dict(entry.get("advanced") or {}),
                    dry_run=bool(entry.get("dry_run", False)),
                )
                if outcome is None:
                    summary["skipped"].append(task_id)
                elif outcome.success:
                    summary["succeeded"].append(task_id)
                else:
                    summary["failed"].append(task_id)
        finally:
            self.progress = FlowProgress()
        logger.info(
            "task flow finished: %d succeeded, %d failed, %d skipped%s",
            len(summary["succeeded"]),
            len(summary["failed"]),
            len(summary["skipped"]),
            " (stopped)" if summary["stopped"] else "",
        )
        self.last_summary = summary
        return summary

    def status(self) -> dict[str, Any]:
        return self.progress.to_dict()

    def request_stop(self) -> bool:
        """Ask the running flow to stop after its current entry."""
        if not self.progress.is_running:
            return False
        self.progress.should_stop = True
        self.progress.message = "Stopping after the current task..."
        logger.info("task flow stop requested at step %d", self.progress.current_step + 1)
        return True
