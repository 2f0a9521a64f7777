"""Task registry collaborator.

Tasks are owned by the surrounding application; this module only reads them.
Stored layout:

- ``task:list``  Redis list of task ids, in display order
- ``task:<id>``  JSON task definition
"""

from __future__ import annotations

import json
import logging
from typing import Protocol

import redis
from pydantic import ValidationError

from completion_tracker.tracking.errors import MalformedTask
from completion_tracker.tracking.models import TaskDefinition
from completion_tracker.tracking.store import store_call

logger = logging.getLogger(__name__)

TASK_LIST_KEY = "task:list"


def task_key(task_id: str) -> str:
    return f"task:{task_id}"


class TaskRegistry(Protocol):
    def get_task(self, task_id: str) -> TaskDefinition | None: ...

    def get_all_tasks(self) -> list[TaskDefinition]: ...


def parse_task(task_id: str, raw: str) -> TaskDefinition:
    """Validate a stored task definition, raising :class:`MalformedTask`."""

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedTask(task_id, f"not valid JSON ({e.msg})") from e
    if not isinstance(payload, dict):
        raise MalformedTask(task_id, "expected a JSON object")
    try:
        return TaskDefinition.model_validate(payload)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise MalformedTask(task_id, f"invalid fields: {', '.join(fields)}") from e


class RedisTaskRegistry:
    """Reads task definitions written by the task-management side of the app."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    def get_task(self, task_id: str) -> TaskDefinition | None:
        with store_call("get_task"):
            raw = self._client.get(task_key(task_id))
        if raw is None:
            return None
        return parse_task(task_id, raw)

    def get_all_tasks(self) -> list[TaskDefinition]:
        """Every valid registered task, in list order.

        Invalid definitions are skipped with a warning so one bad record does
        not hide the rest of the listing.
        """

        with store_call("get_all_tasks"):
            task_ids = self._client.lrange(TASK_LIST_KEY, 0, -1)
            if not task_ids:
                return []
            pipe = self._client.pipeline(transaction=False)
            for task_id in task_ids:
                pipe.get(task_key(task_id))
            raws = pipe.execute()

        tasks: list[TaskDefinition] = []
        for task_id, raw in zip(task_ids, raws, strict=True):
            if raw is None:
                logger.warning("Listed task has no definition", extra={"task_id": task_id})
                continue
            try:
                tasks.append(parse_task(task_id, raw))
            except MalformedTask as e:
                logger.warning(
                    "Skipping invalid task definition",
                    extra={"task_id": task_id, "reason": e.reason},
                )
        return tasks
