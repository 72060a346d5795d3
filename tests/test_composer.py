from __future__ import annotations

import json

import pytest

from maa_console.webui_server.composer import (
    collapse_references,
    compose_arguments,
    compose_task_config,
    inject_collection_suffix,
)
from maa_console.webui_server.references import ReferenceResolution
from maa_console.webui_server.tasks import TaskRegistry


@pytest.fixture()
def registry() -> TaskRegistry:
    return TaskRegistry()


def _collection(source_text: str, auto_add_suffix: bool = True) -> ReferenceResolution:
    return ReferenceResolution(
        kind="collection",
        job_id="26766",
        title="Job collection",
        source_text=source_text,
        auto_add_suffix=auto_add_suffix,
    )


def test_plain_task_passes_input_through(registry):
    assert compose_arguments(registry.get("fight"), "1-7", {}) == "1-7"


def test_empty_reference_input_is_exactly_the_formation_flag(registry):
    assert compose_arguments(registry.get("copilot"), "", {}) == "--formation"
    assert compose_arguments(registry.get("paradoxcopilot"), None, None) == "--formation"


@pytest.mark.parametrize("raw", ["maa://1234", "maa://1\nmaa://2", "\n\n", "   "])
def test_reference_tasks_always_end_with_formation_flag(registry, raw):
    result = compose_arguments(registry.get("copilot"), raw, {})
    assert result.endswith("--formation")
    assert not result.startswith(" ")


def test_multiline_input_collapses_to_single_spaces(registry):
    raw = "maa://1\n\n  maa://2  \r\nmaa://3\n"
    assert compose_arguments(registry.get("paradoxcopilot"), raw, {}) == "maa://1 maa://2 maa://3 --formation"
    assert collapse_references("maa://1") == "maa://1"


def test_multiline_collapse_only_applies_to_reference_tasks(registry):
    assert compose_arguments(registry.get("startup"), "Official\nBilibili", {}) == "Official\nBilibili"


def test_dry_run_short_circuits_advanced_options(registry):
    advanced = {"ignoreRequirements": True, "raid": "1"}
    result = compose_arguments(registry.get("copilot"), "maa://1234", advanced, dry_run=True)
    assert result == "maa://1234 --dry-run"


def test_dry_run_with_empty_input_has_no_leading_space(registry):
    assert compose_arguments(registry.get("paradoxcopilot"), "", {}, dry_run=True) == "--dry-run"


def test_dry_run_ignored_when_task_does_not_support_it(registry):
    result = compose_arguments(registry.get("ssscopilot"), "maa://5", {"loopTimes": 3}, dry_run=True)
    assert "--dry-run" not in result
    assert result == "maa://5 --loop-times 3"


def test_advanced_options_follow_declared_order(registry):
    advanced = {"supportName": "Kal'tsit", "ignoreRequirements": True, "raid": "2", "addTrust": False}
    result = compose_arguments(registry.get("copilot"), "maa://1234", advanced)
    assert result == "maa://1234 --formation --ignore-requirements --raid 2 --support-unit-name Kal'tsit"


def test_false_and_empty_values_are_never_emitted(registry):
    advanced = {"reportPenguin": False, "series": "", "medicine": "  ", "times": None}
    assert compose_arguments(registry.get("fight"), "1-7", advanced) == "1-7"


def test_flag_true_appears_exactly_once(registry):
    result = compose_arguments(registry.get("fight"), "1-7", {"reportPenguin": True})
    assert result.split().count("--report-to-penguin") == 1


def test_zero_is_a_real_numeric_value(registry):
    assert compose_arguments(registry.get("fight"), "CE-6", {"medicine": 0}) == "CE-6 -m 0"


def test_no_defaults_are_synthesized(registry):
    assert compose_arguments(registry.get("roguelike"), "Sami", {}) == "Sami"


def test_collection_suffix_applies_to_copilot_only(registry):
    resolution = _collection("maa://26766")
    assert compose_arguments(registry.get("copilot"), "maa://26766", {}, resolution=resolution) == (
        "maa://26766s --formation"
    )
    assert compose_arguments(registry.get("paradoxcopilot"), "maa://26766", {}, resolution=resolution) == (
        "maa://26766 --formation"
    )


def test_collection_without_auto_suffix_leaves_input(registry):
    resolution = _collection("maa://26766s", auto_add_suffix=False)
    result = compose_arguments(registry.get("copilot"), "maa://26766", {}, resolution=resolution)
    assert result == "maa://26766 --formation"


def test_suffix_injection_is_idempotent():
    text = "maa://1234 maa://99s maa://5"
    once = inject_collection_suffix(text)
    assert once == "maa://1234s maa://99s maa://5s"
    assert inject_collection_suffix(once) == once


def test_suffix_injection_does_not_split_digits():
    assert inject_collection_suffix("maa://1234s") == "maa://1234s"


def test_startup_address_and_account_follow_client_type(registry):
    result = compose_arguments(
        registry.get("startup"), "Official", {"address": "127.0.0.1:5555", "account": "main"}
    )
    assert result == "Official -a 127.0.0.1:5555 --account main"


def test_fight_expiring_medicine_flag(registry):
    assert compose_arguments(registry.get("fight"), "1-7", {"expiringMedicine": 1}) == "1-7 --expiring-medicine 1"


def test_core_task_arguments_are_the_task_id(registry):
    assert compose_arguments(registry.get("award"), "ignored", {"mail": True}) == "award"


def test_task_config_is_none_for_regular_tasks(registry):
    assert compose_task_config(registry.get("fight"), {"medicine": 1}) is None


def test_task_config_coerces_param_values(registry):
    config = json.loads(
        compose_task_config(
            registry.get("infrast"),
            {
                "mode": "10000",
                "facility": " Mfg , Trade ",
                "drones": "",
                "threshold": "0.3",
                "replenish": False,
            },
        )
    )
    assert config == {
        "name": "Base Shifts",
        "type": "Infrast",
        "params": {"mode": "10000", "facility": ["Mfg", "Trade"], "threshold": 0.3, "replenish": False},
    }


def test_task_config_keeps_bracketed_text_and_lists(registry):
    config = json.loads(
        compose_task_config(registry.get("recruit"), {"select": [4, 5], "confirm": "[3, 4]", "times": "4"})
    )
    assert config["params"] == {"select": [4, 5], "confirm": "[3, 4]", "times": 4}
