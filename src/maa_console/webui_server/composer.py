from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any, Mapping

from .tasks import TaskDefinition

if TYPE_CHECKING:
    from .references import ReferenceResolution

# Tasks whose input is one or more newline-separated job references.
REFERENCE_TASK_IDS = frozenset({"copilot", "paradoxcopilot"})
# The only reference task that understands job collections.
COLLECTION_TASK_ID = "copilot"

DRY_RUN_FLAG = "--dry-run"
DEFAULT_FORMATION_FLAG = "--formation"
COLLECTION_SUFFIX = "s"

# The lookahead also rejects digits so "maa://12s" never matches as "maa://1".
_UNSUFFIXED_REFERENCE_RE = re.compile(r"maa://(\d+)(?![\d" + COLLECTION_SUFFIX + r"])")


def _append(params: str, fragment: str) -> str:
    return f"{params} {fragment}" if params else fragment


def collapse_references(raw_input: str) -> str:
    """Join newline-separated references into one space-separated string."""
    if "\n" not in raw_input:
        return raw_input
    lines = [line.strip() for line in raw_input.splitlines()]
    return " ".join(line for line in lines if line)


def inject_collection_suffix(params: str) -> str:
    return _UNSUFFIXED_REFERENCE_RE.sub(lambda m: f"maa://{m.group(1)}{COLLECTION_SUFFIX}", params)


def _format_value(value: Any) -> str:
    if isinstance(value, list):
        return ",".join(_format_value(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def compose_arguments(
    task: TaskDefinition,
    raw_input: str | None,
    advanced: Mapping[str, Any] | None = None,
    *,
    dry_run: bool = False,
    resolution: ReferenceResolution | None = None,
) -> str:
    """Build the argument string handed to the backend for ``task``.

    Steps run in a fixed order: multi-line collapse, collection suffix,
    dry-run short-circuit, the implicit formation flag, then advanced
    options in declared order. Only keys present in ``advanced`` are
    emitted; option defaults are a display concern.

    Built-in core tasks take no free-text input: their argument is the
    task id and their options travel in ``compose_task_config``.
    """
    if task.is_core_task:
        return task.task_id

    params = (raw_input or "").strip()

    if task.task_id in REFERENCE_TASK_IDS:
        params = collapse_references(params)

    if (
        task.task_id == COLLECTION_TASK_ID
        and resolution is not None
        and resolution.kind == "collection"
        and resolution.auto_add_suffix
    ):
        params = inject_collection_suffix(params)

    if dry_run and task.supports_dry_run:
        return _append(params, DRY_RUN_FLAG)

    if task.task_id in REFERENCE_TASK_IDS:
        params = _append(params, DEFAULT_FORMATION_FLAG)

    values = advanced or {}
    for option in task.options:
        if option.key not in values:
            continue
        value = values[option.key]
        if isinstance(value, str):
            value = value.strip()
        if value is None or value == "" or value == [] or value is False:
            continue
        if option.kind == "flag":
            if value is True:
                params = _append(params, option.flag)
            continue
        params = _append(params, f"{option.flag} {_format_value(value)}")

    return params


# Params whose numeric-looking strings are enum codes, not numbers.
KEEP_AS_STRING = frozenset({"mode"})
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


def _coerce_param(key: str, value: Any) -> Any:
    if isinstance(value, (bool, int, float, list)):
        return value
    text = str(value).strip()
    if text.startswith("[") and text.endswith("]"):
        return text
    if "," in text:
        return [part.strip() for part in text.split(",") if part.strip()]
    if key not in KEEP_AS_STRING and _NUMBER_RE.match(text):
        return float(text) if "." in text else int(text)
    return text


def compose_task_config(task: TaskDefinition, advanced: Mapping[str, Any] | None = None) -> str | None:
    """Serialize a core task's options into the JSON task config, or ``None``.

    Empty values are dropped. Comma-separated text becomes a list and
    numeric text becomes a number, except for keys in ``KEEP_AS_STRING``.
    """
    if not task.is_core_task:
        return None
    values = advanced or {}
    params: dict[str, Any] = {}
    for option in task.options:
        value = values.get(option.key)
        if isinstance(value, str):
            value = value.strip()
        if value is None or value == "" or value == []:
            continue
        params[option.key] = _coerce_param(option.key, value)
    return json.dumps({"name": task.title, "type": task.task_type, "params": params}, ensure_ascii=False)
