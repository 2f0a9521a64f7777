"""Typed values exchanged between the store edge and the tracking components."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

KEY_DELIMITER = ":"


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TaskDefinition(BaseModel):
    """A recurring task as stored by the task registry.

    Stored JSON uses camelCase (``assigneeId``); Python code uses snake_case.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    score: StrictInt = Field(gt=0)
    period: Period
    assignee_id: str = Field(alias="assigneeId", min_length=1)

    @field_validator("id", "name", "assignee_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("id")
    @classmethod
    def _no_delimiter(cls, value: str) -> str:
        # Completion keys are ':'-delimited; an id containing it would not decode.
        if KEY_DELIMITER in value:
            raise ValueError(f"must not contain {KEY_DELIMITER!r}")
        return value


class CompletionMarker(BaseModel):
    """Value stored under a completion key."""

    model_config = ConfigDict(populate_by_name=True)

    confirmed: bool = True
    confirmed_at: datetime = Field(alias="confirmedAt")
    confirmed_by: str = Field(alias="confirmedBy")


class ScoreAggregate(BaseModel):
    """Per-user score hash. Owned by the scoring service except during rotation."""

    total: int = 0
    adjustment: int = 0
    last_adjusted_at: datetime | None = None
