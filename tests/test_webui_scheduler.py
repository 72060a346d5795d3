from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.triggers.cron import CronTrigger

from maa_console.webui_server.runner import ExecutionOutcome
from maa_console.webui_server.scheduler import ScheduleService
from maa_console.webui_server.state import TaskConfigState
from maa_console.webui_server.tasks import TaskRegistry


def _make_service(config: TaskConfigState | None = None) -> ScheduleService:
    """Create a ScheduleService around a mocked coordinator without starting it."""
    coordinator = MagicMock()
    coordinator.registry = TaskRegistry()
    coordinator.wait_idle = AsyncMock()
    coordinator.execute = AsyncMock()
    config = config or TaskConfigState()
    return ScheduleService(coordinator, lambda: config, timezone="UTC")


def _outcome(task_id: str, success: bool) -> ExecutionOutcome:
    return ExecutionOutcome(task_id, task_id, "", success, "done")


class TestBuildTrigger:
    def test_daily_time_returns_cron_trigger(self):
        trigger = _make_service()._build_trigger("08:30")
        assert isinstance(trigger, CronTrigger)
        fields = {field.name: str(field) for field in trigger.fields}
        assert fields["hour"] == "8"
        assert fields["minute"] == "30"

    def test_invalid_time_raises(self):
        with pytest.raises(ValueError, match="HH:MM"):
            _make_service()._build_trigger("8am")


class TestSync:
    def test_enabled_schedule_adds_one_job_per_time(self):
        config = TaskConfigState(schedule_enabled=True, schedule_times=["08:00", "20:00"])
        svc = _make_service(config)

        accepted = svc.sync(config)

        assert accepted == ["08:00", "20:00"]
        assert [job["time"] for job in svc.list_jobs()] == ["08:00", "20:00"]

    def test_invalid_times_are_skipped(self):
        config = TaskConfigState(schedule_enabled=True, schedule_times=["08:00", "99:99"])
        svc = _make_service(config)

        assert svc.sync(config) == ["08:00"]

    def test_disabled_schedule_removes_jobs(self):
        config = TaskConfigState(schedule_enabled=True, schedule_times=["08:00"])
        svc = _make_service(config)
        svc.sync(config)

        config.schedule_enabled = False
        assert svc.sync(config) == []
        assert svc.list_jobs() == []

    def test_resync_replaces_previous_times(self):
        config = TaskConfigState(schedule_enabled=True, schedule_times=["08:00", "14:00"])
        svc = _make_service(config)
        svc.sync(config)

        config.schedule_times = ["21:00"]
        svc.sync(config)

        assert [job["time"] for job in svc.list_jobs()] == ["21:00"]


class TestRunFlow:
    @pytest.mark.asyncio
    async def test_runs_enabled_entries_in_order(self):
        config = TaskConfigState(
            automation_tasks=[
                {"id": "1", "task_id": "startup", "input": "Official"},
                {"id": "2", "task_id": "fight", "enabled": False},
                {"id": "3", "task_id": "fight", "input": "1-7", "advanced": {"stone": 1}},
                {"id": "4", "task_id": "copilot", "input": "maa://1", "dry_run": True},
            ]
        )
        svc = _make_service(config)
        svc.coordinator.execute.side_effect = [
            _outcome("startup", True),
            _outcome("fight", False),
            _outcome("copilot", True),
        ]

        summary = await svc.run_flow()

        calls = svc.coordinator.execute.await_args_list
        assert [call.args[0] for call in calls] == ["startup", "fight", "copilot"]
        assert calls[1].kwargs == {"raw_input": "1-7", "advanced": {"stone": 1}, "dry_run": False}
        assert calls[2].kwargs["dry_run"] is True
        assert summary == {"succeeded": ["startup", "copilot"], "failed": ["fight"], "skipped": [], "stopped": False}
        assert svc.last_summary == summary
        assert svc.coordinator.wait_idle.await_count == 3

    @pytest.mark.asyncio
    async def test_unknown_and_rejected_entries_are_skipped(self):
        config = TaskConfigState(
            automation_tasks=[
                {"id": "1", "task_id": "retired-task"},
                {"id": "2", "task_id": "startup"},
            ]
        )
        svc = _make_service(config)
        svc.coordinator.execute.return_value = None

        summary = await svc.run_flow()

        assert summary["skipped"] == ["retired-task", "startup"]
        svc.coordinator.execute.assert_awaited_once()


class TestFlowProgress:
    @pytest.mark.asyncio
    async def test_stop_request_ends_flow_after_current_entry(self):
        config = TaskConfigState(
            automation_tasks=[
                {"id": "1", "task_id": "startup"},
                {"id": "2", "task_id": "fight", "input": "1-7"},
                {"id": "3", "task_id": "closedown"},
            ]
        )
        svc = _make_service(config)
        seen_status = []

        async def first_entry(task_id, **_kwargs):
            seen_status.append(svc.status())
            assert svc.request_stop() is True
            return _outcome(task_id, True)

        svc.coordinator.execute.side_effect = first_entry

        summary = await svc.run_flow()

        svc.coordinator.execute.assert_awaited_once()
        assert summary == {"succeeded": ["startup"], "failed": [], "skipped": [], "stopped": True}
        assert seen_status[0]["is_running"] is True
        assert seen_status[0]["current_step"] == 0
        assert seen_status[0]["total_steps"] == 3
        assert seen_status[0]["current_task"] == "startup"
        assert seen_status[0]["message"] == "Running Start Game"
        assert seen_status[0]["start_time"] is not None
        assert svc.status()["is_running"] is False
        assert svc.status()["should_stop"] is False

    @pytest.mark.asyncio
    async def test_overlapping_trigger_is_ignored(self):
        config = TaskConfigState(automation_tasks=[{"id": "1", "task_id": "startup"}])
        svc = _make_service(config)
        nested = []

        async def first_entry(task_id, **_kwargs):
            nested.append(await svc.run_flow())
            return _outcome(task_id, True)

        svc.coordinator.execute.side_effect = first_entry

        summary = await svc.run_flow()

        assert nested == [None]
        assert summary["succeeded"] == ["startup"]
        svc.coordinator.execute.assert_awaited_once()

    def test_stop_without_running_flow_is_refused(self):
        svc = _make_service()
        assert svc.request_stop() is False
        assert svc.status() == {
            "is_running": False,
            "current_step": -1,
            "total_steps": 0,
            "current_task": "",
            "message": "",
            "start_time": None,
            "should_stop": False,
        }

    @pytest.mark.asyncio
    async def test_progress_resets_when_an_entry_raises(self):
        config = TaskConfigState(automation_tasks=[{"id": "1", "task_id": "startup"}])
        svc = _make_service(config)
        svc.coordinator.execute.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await svc.run_flow()

        assert svc.status()["is_running"] is False
