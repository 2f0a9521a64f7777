"""Periodic rotation of completion markers.

Rotation runs in two independently retryable steps:

1. :class:`PeriodResetScanner` walks the marker keyspace with SCAN, keeps the
   keys whose bucket falls in a closed historical window, and stages them as a
   reset batch with a short TTL. A batch that is never committed expires.
2. :class:`ResetCommitter` deletes the staged keys and the batch record, then
   zeroes every known user's score aggregate.

Markers and scores are reset by two separate pipelines. A failure between them
is corrected by the next run: a rescan finds whatever was left behind, and
committing an absent batch is a successful no-op.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime

from completion_tracker.config import CommitterConfig, ScannerConfig
from completion_tracker.tracking import keys
from completion_tracker.tracking.errors import MalformedKey
from completion_tracker.tracking.registry import TaskRegistry
from completion_tracker.tracking.store import CompletionStore

logger = logging.getLogger(__name__)


def default_window(today: date, months: int = 1) -> tuple[date, date]:
    """The ``months`` full calendar months before the one containing ``today``.

    Returned as a half-open ``[start, end)`` range; ``end`` is the first day of
    the current month. Weekly buckets that straddle ``end`` are still open and
    are skipped by the scan.
    """

    if months < 1:
        raise ValueError("months must be >= 1")
    end = today.replace(day=1)
    year, month = end.year, end.month - months
    while month < 1:
        month += 12
        year -= 1
    return date(year, month, 1), end


@dataclass(frozen=True, slots=True)
class ScanReport:
    batch_id: str
    window_start: date
    window_end: date
    scanned_count: int
    staged_count: int
    malformed_count: int
    keys: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class CommitResult:
    batch_id: str
    staged_count: int
    deleted_count: int
    users_reset: int


@dataclass(frozen=True, slots=True)
class NothingPending:
    """No staged batch exists; committing is a successful no-op."""

    batch_id: str


class PeriodResetScanner:
    def __init__(self, store: CompletionStore, config: ScannerConfig | None = None) -> None:
        self._store = store
        self._config = config or ScannerConfig()

    @property
    def config(self) -> ScannerConfig:
        return self._config

    def scan(self, prefix: str, window_start: date, window_end: date) -> ScanReport:
        """Select and stage every key under ``prefix`` whose whole bucket lies in
        ``[window_start, window_end)``.

        A bucket that is still open at ``window_end`` is left alone. Keys that fail
        to decode are counted and skipped.
        """

        if window_start >= window_end:
            raise ValueError(
                f"Empty reset window: {window_start.isoformat()} >= {window_end.isoformat()}"
            )

        selected: list[str] = []
        scanned = 0
        malformed = 0
        for key in self._store.scan_keys(prefix, count=self._config.scan_count):
            scanned += 1
            try:
                parsed = keys.decode(key)
            except MalformedKey as e:
                malformed += 1
                logger.warning(
                    "Skipping malformed completion key",
                    extra={"key": key, "reason": e.reason},
                )
                continue
            closed = keys.bucket_end(parsed.period, parsed.as_date) <= window_end
            if window_start <= parsed.as_date and closed:
                selected.append(key)

        # SCAN may return a key more than once; the batch holds each key once.
        staged = sorted(set(selected))
        self.stage(staged)

        report = ScanReport(
            batch_id=self._config.batch_id,
            window_start=window_start,
            window_end=window_end,
            scanned_count=scanned,
            staged_count=len(staged),
            malformed_count=malformed,
            keys=tuple(staged),
        )
        logger.info(
            "Reset scan staged",
            extra={
                "batch_id": report.batch_id,
                "window_start": window_start.isoformat(),
                "window_end": window_end.isoformat(),
                "scanned": scanned,
                "staged": report.staged_count,
                "malformed": malformed,
            },
        )
        return report

    def scan_previous_period(self, today: date, *, months: int | None = None) -> ScanReport:
        if months is None:
            months = self._config.window_months
        start, end = default_window(today, months)
        return self.scan(self._config.key_prefix, start, end)

    def stage(self, keys_to_reset: Sequence[str]) -> int:
        """Write ``keys_to_reset`` as the pending batch, replacing any earlier one."""

        self._store.stage_batch(
            self._config.batch_id,
            keys_to_reset,
            ttl_seconds=self._config.batch_ttl_seconds,
        )
        return len(keys_to_reset)


class ResetCommitter:
    def __init__(
        self,
        *,
        store: CompletionStore,
        registry: TaskRegistry,
        config: CommitterConfig | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._config = config or CommitterConfig()

    def known_user_ids(self) -> list[str]:
        """Task assignees plus configured extra users, first-seen order."""

        seen: dict[str, None] = {}
        for task in self._registry.get_all_tasks():
            seen.setdefault(task.assignee_id, None)
        for user_id in self._config.parsed_score_user_ids():
            seen.setdefault(user_id, None)
        return list(seen)

    def commit(self, batch_id: str, now: datetime) -> CommitResult | NothingPending:
        """Delete a staged batch's keys and reset score aggregates.

        Raises:
            InvalidResetBatch: the staged payload is not a list of keys.
            StoreUnavailable: a store call failed; rerunning is safe.
        """

        staged = self._store.load_batch(batch_id)
        if staged is None:
            logger.info("No pending reset batch", extra={"batch_id": batch_id})
            return NothingPending(batch_id=batch_id)

        deleted = self._store.delete_batch(batch_id, staged)
        users_reset = self._store.reset_scores(self.known_user_ids(), at=now)

        result = CommitResult(
            batch_id=batch_id,
            staged_count=len(staged),
            deleted_count=deleted,
            users_reset=users_reset,
        )
        logger.info(
            "Reset batch committed",
            extra={
                "batch_id": batch_id,
                "staged": result.staged_count,
                "deleted": deleted,
                "users_reset": users_reset,
            },
        )
        return result
