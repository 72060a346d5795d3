from __future__ import annotations

import pytest

from maa_console.webui_server.config_files import UserConfigStore
from maa_console.webui_server.state import (
    DEFAULT_SCHEDULE_TIMES,
    TASK_CONFIG_TYPE,
    ControllerState,
    TaskConfigState,
    migrate_task_config,
    parse_schedule_time,
)
from maa_console.webui_server.tasks import TaskRegistry


def test_migration_adds_schedule_defaults():
    migrated = migrate_task_config({"automationTasks": [{"id": "a"}], "theme": "dark"}, 0)
    assert migrated["scheduleEnabled"] is False
    assert migrated["scheduleTimes"] == ["08:00", "14:00", "20:00"]
    assert migrated["automationTasks"] == [{"id": "a"}]
    assert migrated["theme"] == "dark"


def test_migration_keeps_existing_schedule_and_is_idempotent():
    payload = {"scheduleEnabled": True, "scheduleTimes": ["06:30"]}
    once = migrate_task_config(payload, 0)
    assert once == payload
    assert migrate_task_config(once, 0) == once
    assert migrate_task_config({}, 1) == {}


def test_hydrate_upgrades_legacy_payload_and_saves(tmp_path):
    store = UserConfigStore(tmp_path)
    store.save(TASK_CONFIG_TYPE, {"automationTasks": [], "categoryTasks": {}, "legacyFlag": 1})

    config = TaskConfigState.hydrate(store)

    assert config.schedule_enabled is False
    assert config.schedule_times == list(DEFAULT_SCHEDULE_TIMES)
    saved = store.load(TASK_CONFIG_TYPE)
    assert saved["version"] == 1
    assert saved["state"]["legacyFlag"] == 1
    assert saved["state"]["scheduleTimes"] == list(DEFAULT_SCHEDULE_TIMES)


def test_hydrate_current_version_does_not_rewrite(tmp_path):
    store = UserConfigStore(tmp_path)
    store.save(TASK_CONFIG_TYPE, {"version": 1, "state": {"scheduleEnabled": True, "scheduleTimes": ["07:00"]}})

    config = TaskConfigState.hydrate(store)

    assert config.schedule_enabled is True
    assert config.schedule_times == ["07:00"]
    assert not (tmp_path / "user-configs" / ".history").exists()


def test_hydrate_without_file_returns_defaults(tmp_path):
    config = TaskConfigState.hydrate(UserConfigStore(tmp_path))
    assert config.automation_tasks == []
    assert config.schedule_times == ["08:00", "14:00", "20:00"]


def test_hydrate_unreadable_file_returns_defaults_without_saving(tmp_path):
    path = tmp_path / "user-configs" / "task-config.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    config = TaskConfigState.hydrate(UserConfigStore(tmp_path))

    assert config.automation_tasks == []
    assert config.schedule_times == list(DEFAULT_SCHEDULE_TIMES)
    assert path.read_text(encoding="utf-8") == "{not json"


def test_current_envelope_without_schedule_times_uses_defaults(tmp_path):
    store = UserConfigStore(tmp_path)
    store.save(TASK_CONFIG_TYPE, {"version": 1, "state": {"scheduleEnabled": True}})

    config = TaskConfigState.hydrate(store)

    assert config.schedule_enabled is True
    assert config.schedule_times == list(DEFAULT_SCHEDULE_TIMES)
    assert TaskConfigState.from_payload({"scheduleTimes": None}).schedule_times == list(DEFAULT_SCHEDULE_TIMES)
    assert TaskConfigState.from_payload({"scheduleTimes": []}).schedule_times == []


@pytest.mark.parametrize("value,expected", [("08:00", (8, 0)), ("23:59", (23, 59)), ("07:05", (7, 5))])
def test_parse_schedule_time_valid(value, expected):
    assert parse_schedule_time(value) == expected


@pytest.mark.parametrize("value", ["24:00", "8:00", "12:60", "noon", ""])
def test_parse_schedule_time_invalid(value):
    with pytest.raises(ValueError, match="HH:MM"):
        parse_schedule_time(value)


def test_set_schedule_dedupes_and_validates():
    config = TaskConfigState()
    config.set_schedule(True, ["09:00", "09:00", "21:30"])
    assert config.schedule_enabled is True
    assert config.schedule_times == ["09:00", "21:30"]
    with pytest.raises(ValueError):
        config.set_schedule(True, ["25:00"])
    assert config.schedule_times == ["09:00", "21:30"]


def test_enabled_flow_skips_disabled_entries():
    config = TaskConfigState(
        automation_tasks=[
            {"id": "1", "task_id": "startup", "enabled": True},
            {"id": "2", "task_id": "fight", "enabled": False},
            {"id": "3", "task_id": "closedown"},
        ]
    )
    assert [item["id"] for item in config.enabled_flow()] == ["1", "3"]


def test_controller_export_restore_round_trip():
    registry = TaskRegistry()
    state = ControllerState()
    state.set_input("fight", "1-7")
    state.set_advanced("fight", "stone", 1)
    state.set_dry_run("copilot", True)

    exported = state.export(registry)
    assert exported["automation"]["inputs"] == {"fight": "1-7"}
    assert exported["combat"]["dry_run"] == {"copilot": True}

    restored = ControllerState()
    restored.restore({**exported, "bogus": "x", "combat": {**exported["combat"], "inputs": {"nope": "y"}}}, registry)
    assert restored.input_for("fight") == "1-7"
    assert restored.advanced_for("fight") == {"stone": 1}
    assert restored.dry_run_for("copilot") is True
    assert restored.input_for("nope") == ""


def test_set_advanced_none_removes_value():
    state = ControllerState()
    state.set_advanced("fight", "stone", 2)
    state.set_advanced("fight", "stone", None)
    assert state.advanced_for("fight") == {}


def test_run_flags_are_single_flight():
    state = ControllerState()
    assert state.begin_run("fight") is True
    assert state.begin_run("startup") is False
    assert state.active_task_id == "fight"
    state.finish_run()
    assert state.is_running is False
    assert state.begin_resolve() is True
    assert state.begin_resolve() is False
    state.finish_resolve()
    assert state.is_resolving is False
