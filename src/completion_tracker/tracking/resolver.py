"""Batch completion status for task listings.

A listing of N tasks costs one store round trip: every current-bucket key is
checked in a single pipelined EXISTS and the results are mapped back by index.
If that call fails the whole resolution fails.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime

from completion_tracker.tracking import keys
from completion_tracker.tracking.models import TaskDefinition
from completion_tracker.tracking.store import CompletionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TaskCompletion:
    task: TaskDefinition
    completed: bool
    completion_key: str


@dataclass(frozen=True, slots=True)
class CompletionSummary:
    tasks: list[TaskCompletion]
    total_count: int
    active_count: int
    completed_count: int


class BatchCompletionResolver:
    def __init__(self, store: CompletionStore) -> None:
        self._store = store

    def resolve_many(
        self, tasks: Sequence[TaskDefinition], now: date | datetime
    ) -> list[TaskCompletion]:
        """Completion status of each task for the bucket containing ``now``.

        Output is index-aligned with ``tasks``.

        Raises:
            StoreUnavailable: the batched existence check failed.
        """

        completion_keys = [keys.encode(task.period, task.id, now) for task in tasks]
        flags = self._store.exists_many(completion_keys)
        return [
            TaskCompletion(task=task, completed=flag, completion_key=key)
            for task, key, flag in zip(tasks, completion_keys, flags, strict=True)
        ]

    def summarize(
        self, tasks: Sequence[TaskDefinition], now: date | datetime
    ) -> CompletionSummary:
        resolved = self.resolve_many(tasks, now)
        completed = sum(1 for r in resolved if r.completed)
        logger.debug(
            "Resolved task completion",
            extra={"total": len(resolved), "completed": completed},
        )
        return CompletionSummary(
            tasks=resolved,
            total_count=len(resolved),
            active_count=len(resolved) - completed,
            completed_count=completed,
        )
