"""Pydantic models for the REST server.

Wire names are camelCase to match the dashboard client.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from completion_tracker.tracking.models import Period


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitiateRequest(ApiModel):
    task_id: str = Field(min_length=1)


class InitiateResponse(ApiModel):
    completion_key: str


class ConfirmRequest(ApiModel):
    completion_key: str


class ConfirmResponse(ApiModel):
    completion_key: str
    ttl: int
    expires_at: datetime
    reconfirmed: bool = False


class ApiTask(ApiModel):
    id: str
    name: str
    score: int
    period: Period
    assignee_id: str
    completed: bool


class TaskListResponse(ApiModel):
    tasks: list[ApiTask] = Field(default_factory=list)
    total_count: int
    active_count: int
    completed_count: int


class ResetScanResponse(ApiModel):
    batch_id: str
    staged_count: int
    scanned_count: int
    malformed_count: int
    window_start: date
    window_end: date


class ResetConfirmResponse(ApiModel):
    batch_id: str
    nothing_pending: bool | None = None
    deleted_count: int | None = None
    staged_count: int | None = None
    users_reset: int | None = None


class ResetTriggerResponse(ApiModel):
    scan: ResetScanResponse
    commit: ResetConfirmResponse
