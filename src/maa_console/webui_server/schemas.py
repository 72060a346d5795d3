from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from .state import parse_schedule_time

AdvancedValue = bool | int | float | str | list[str | int] | None


class TaskInputRequest(BaseModel):
    text: str = ""


class AdvancedUpdateRequest(BaseModel):
    values: dict[str, AdvancedValue] = Field(default_factory=dict)
    replace: bool = False


class DryRunRequest(BaseModel):
    enabled: bool


class UserConfigWriteRequest(BaseModel):
    data: Any


class FlowEntry(BaseModel):
    id: str = Field(min_length=1)
    task_id: str = Field(min_length=1)
    input: str = ""
    enabled: bool = True
    advanced: dict[str, AdvancedValue] = Field(default_factory=dict)
    dry_run: bool = False


class TaskConfigUpdateRequest(BaseModel):
    automation_tasks: list[FlowEntry] | None = None
    schedule_enabled: bool | None = None
    schedule_times: list[str] | None = None

    @field_validator("schedule_times")
    @classmethod
    def check_times(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        for item in value:
            parse_schedule_time(item)
        return value
