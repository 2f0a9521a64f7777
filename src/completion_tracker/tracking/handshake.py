"""Two-step completion handshake.

``initiate`` computes the completion key for the task's current period bucket
and hands it back to the caller; nothing is written. ``confirm`` validates that
key and writes the marker. Only the confirmed state is durable:

    NOT_STARTED -> INITIATED -> CONFIRMED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from completion_tracker.config import HandshakeConfig
from completion_tracker.tracking import keys
from completion_tracker.tracking.errors import (
    AlreadyConfirmed,
    InvalidCompletionKey,
    MalformedKey,
    TaskNotFound,
)
from completion_tracker.tracking.models import CompletionMarker, TaskDefinition
from completion_tracker.tracking.registry import TaskRegistry
from completion_tracker.tracking.store import CompletionStore

logger = logging.getLogger(__name__)


class HandshakeState(str, Enum):
    NOT_STARTED = "not_started"
    INITIATED = "initiated"
    CONFIRMED = "confirmed"


@dataclass(frozen=True, slots=True)
class HandshakeTicket:
    """Computed, not yet durable, completion key for one task bucket."""

    completion_key: str
    task: TaskDefinition
    state: HandshakeState = HandshakeState.INITIATED


@dataclass(frozen=True, slots=True)
class ConfirmationReceipt:
    completion_key: str
    ttl: int
    expires_at: datetime
    reconfirmed: bool
    state: HandshakeState = HandshakeState.CONFIRMED


class CompletionHandshake:
    def __init__(
        self,
        *,
        registry: TaskRegistry,
        store: CompletionStore,
        config: HandshakeConfig | None = None,
    ) -> None:
        self._registry = registry
        self._store = store
        self._config = config or HandshakeConfig()

    def initiate(self, task_id: str, now: datetime) -> HandshakeTicket:
        """Compute the current-bucket completion key for ``task_id``.

        Raises:
            TaskNotFound: the registry has no such task.
            MalformedTask: the stored definition fails validation.
        """

        task = self._registry.get_task(task_id)
        if task is None:
            raise TaskNotFound(task_id)

        completion_key = keys.encode(task.period, task.id, now)
        logger.debug(
            "Completion initiated",
            extra={"task_id": task.id, "completion_key": completion_key},
        )
        return HandshakeTicket(completion_key=completion_key, task=task)

    def confirm(self, completion_key: str, now: datetime, caller_id: str) -> ConfirmationReceipt:
        """Record the completion marker for ``completion_key``.

        Writing the same key twice is harmless: the same task and bucket always
        yield the same key, so a second confirm only refreshes the marker.

        Raises:
            InvalidCompletionKey: the key does not follow the completion key grammar.
            AlreadyConfirmed: the key exists and the reconfirm policy is ``reject``.
        """

        try:
            parsed = keys.decode(completion_key)
        except MalformedKey as e:
            raise InvalidCompletionKey(
                f"Completion key must match 'completion:<period>:<taskId>:<datePart>': {e.reason}"
            ) from e

        marker = CompletionMarker(confirmed=True, confirmed_at=now, confirmed_by=caller_id)
        ttl = self._config.marker_ttl_seconds

        if self._config.reconfirm_policy == "reject":
            if not self._store.write_marker_if_absent(completion_key, marker, ttl_seconds=ttl):
                raise AlreadyConfirmed(completion_key)
            reconfirmed = False
        else:
            reconfirmed = self._store.write_marker(completion_key, marker, ttl_seconds=ttl)

        if reconfirmed:
            # Same bucket confirmed again; kept as last-writer-wins.
            logger.warning(
                "Completion key confirmed again",
                extra={
                    "completion_key": completion_key,
                    "task_id": parsed.task_id,
                    "caller_id": caller_id,
                },
            )

        logger.info(
            "Completion confirmed",
            extra={
                "completion_key": completion_key,
                "task_id": parsed.task_id,
                "period": parsed.period.value,
                "caller_id": caller_id,
            },
        )
        return ConfirmationReceipt(
            completion_key=completion_key,
            ttl=ttl,
            expires_at=now + timedelta(seconds=ttl),
            reconfirmed=reconfirmed,
        )
