"""Redis adapter for completion markers, reset batches and score aggregates.

This is the only module that talks to Redis for the tracking components and the
only place stored values are deserialized. Everything above it sees typed
values (:class:`CompletionMarker`, :class:`ScoreAggregate`, ``list[str]``).

Any ``redis.RedisError`` is translated to :class:`StoreUnavailable`; nothing is
retried here.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime

import redis
from pydantic import ValidationError

from completion_tracker.config import TrackerSettings
from completion_tracker.tracking.errors import InvalidResetBatch, StoreUnavailable
from completion_tracker.tracking.models import CompletionMarker, ScoreAggregate

logger = logging.getLogger(__name__)

RESET_BATCH_PREFIX = "reset:pending:"


def create_redis_client(settings: TrackerSettings) -> redis.Redis:
    """Build the client shared by every component of one process."""

    return redis.Redis.from_url(settings.redis_url, decode_responses=True)


def reset_batch_key(batch_id: str) -> str:
    return f"{RESET_BATCH_PREFIX}{batch_id}"


def score_key(user_id: str) -> str:
    return f"user:{user_id}:score"


@contextmanager
def store_call(operation: str) -> Iterator[None]:
    """Translate Redis failures into :class:`StoreUnavailable`."""

    try:
        yield
    except redis.RedisError as e:
        logger.error(
            "Store call failed",
            extra={"operation": operation, "error": str(e)},
        )
        raise StoreUnavailable(f"Store unavailable during {operation}: {e}") from e


class CompletionStore:
    """Typed access to the completion keyspace.

    The client must be created with ``decode_responses=True``.
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    # -- markers -----------------------------------------------------------------

    def write_marker(self, key: str, marker: CompletionMarker, *, ttl_seconds: int) -> bool:
        """Write ``marker`` under ``key`` unconditionally.

        Returns whether a marker already existed. The existence probe and the
        write travel in one pipeline.
        """

        with store_call("write_marker"):
            pipe = self._client.pipeline(transaction=False)
            pipe.exists(key)
            pipe.set(key, _dump_marker(marker), ex=ttl_seconds)
            existed, _ = pipe.execute()
        return bool(existed)

    def write_marker_if_absent(
        self, key: str, marker: CompletionMarker, *, ttl_seconds: int
    ) -> bool:
        """Write ``marker`` only if ``key`` is free. Returns whether it was written."""

        with store_call("write_marker_if_absent"):
            written = self._client.set(key, _dump_marker(marker), ex=ttl_seconds, nx=True)
        return bool(written)

    def get_marker(self, key: str) -> CompletionMarker | None:
        with store_call("get_marker"):
            raw = self._client.get(key)
        if raw is None:
            return None
        try:
            return CompletionMarker.model_validate_json(raw)
        except ValidationError:
            logger.warning("Completion marker has unexpected shape", extra={"key": key})
            return None

    def exists_many(self, keys: Sequence[str]) -> list[bool]:
        """Existence of each key, in input order, via one pipelined round trip."""

        if not keys:
            return []
        with store_call("exists_many"):
            pipe = self._client.pipeline(transaction=False)
            for key in keys:
                pipe.exists(key)
            results = pipe.execute()
        if len(results) != len(keys):
            raise StoreUnavailable(
                f"Store returned {len(results)} results for {len(keys)} existence checks"
            )
        return [bool(r) for r in results]

    def scan_keys(self, prefix: str, *, count: int) -> Iterator[str]:
        """Cursor-based iteration over every key starting with ``prefix``."""

        with store_call("scan_keys"):
            yield from self._client.scan_iter(match=f"{prefix}*", count=count)

    # -- reset batches -----------------------------------------------------------

    def stage_batch(self, batch_id: str, keys: Sequence[str], *, ttl_seconds: int) -> None:
        with store_call("stage_batch"):
            self._client.set(reset_batch_key(batch_id), json.dumps(list(keys)), ex=ttl_seconds)

    def load_batch(self, batch_id: str) -> list[str] | None:
        """Staged keys of ``batch_id``, or ``None`` if nothing is pending."""

        with store_call("load_batch"):
            raw = self._client.get(reset_batch_key(batch_id))
        if raw is None:
            return None
        try:
            keys = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidResetBatch(f"Reset batch {batch_id!r} is not valid JSON: {e}") from e
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise InvalidResetBatch(f"Reset batch {batch_id!r} is not a list of keys")
        return keys

    def delete_batch(self, batch_id: str, keys: Sequence[str]) -> int:
        """Delete ``keys`` and the batch record in one pipeline.

        Returns how many of ``keys`` actually existed. Deleting absent keys is a
        no-op, so re-running on the same batch is safe.
        """

        with store_call("delete_batch"):
            pipe = self._client.pipeline(transaction=False)
            for key in keys:
                pipe.delete(key)
            pipe.delete(reset_batch_key(batch_id))
            results = pipe.execute()
        return sum(int(r) for r in results[: len(keys)])

    # -- score aggregates --------------------------------------------------------

    def reset_scores(self, user_ids: Sequence[str], *, at: datetime) -> int:
        if not user_ids:
            return 0
        with store_call("reset_scores"):
            pipe = self._client.pipeline(transaction=False)
            for user_id in user_ids:
                pipe.hset(
                    score_key(user_id),
                    mapping={"total": 0, "adjustment": 0, "last_adjusted_at": at.isoformat()},
                )
            pipe.execute()
        return len(user_ids)

    def get_score(self, user_id: str) -> ScoreAggregate | None:
        with store_call("get_score"):
            raw = self._client.hgetall(score_key(user_id))
        if not raw:
            return None
        try:
            return ScoreAggregate.model_validate(raw)
        except ValidationError:
            logger.warning(
                "Score aggregate has unexpected shape",
                extra={"user_id": user_id},
            )
            return None


def _dump_marker(marker: CompletionMarker) -> str:
    return marker.model_dump_json(by_alias=True)
