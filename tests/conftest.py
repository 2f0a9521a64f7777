"""Test configuration and fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable

import fakeredis
import pytest

from completion_tracker.config import CommitterConfig, HandshakeConfig, ScannerConfig
from completion_tracker.tracking.handshake import CompletionHandshake
from completion_tracker.tracking.registry import TASK_LIST_KEY, RedisTaskRegistry, task_key
from completion_tracker.tracking.resolver import BatchCompletionResolver
from completion_tracker.tracking.rotation import PeriodResetScanner, ResetCommitter
from completion_tracker.tracking.store import CompletionStore

AddTask = Callable[..., dict[str, object]]


@pytest.fixture
def redis_client() -> fakeredis.FakeRedis:
    """Provide an isolated in-memory Redis."""
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def add_task(redis_client: fakeredis.FakeRedis) -> AddTask:
    """Register tasks the way the task-management side of the app does."""

    def _add(task_id: str = "t1", **overrides: object) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": task_id,
            "name": f"Task {task_id}",
            "score": 10,
            "period": "daily",
            "assigneeId": "1",
            "completed": False,
        }
        payload.update(overrides)
        redis_client.set(task_key(task_id), json.dumps(payload))
        redis_client.rpush(TASK_LIST_KEY, task_id)
        return payload

    return _add


@pytest.fixture
def store(redis_client: fakeredis.FakeRedis) -> CompletionStore:
    return CompletionStore(redis_client)


@pytest.fixture
def registry(redis_client: fakeredis.FakeRedis) -> RedisTaskRegistry:
    return RedisTaskRegistry(redis_client)


@pytest.fixture
def handshake(store: CompletionStore, registry: RedisTaskRegistry) -> CompletionHandshake:
    return CompletionHandshake(registry=registry, store=store, config=HandshakeConfig())


@pytest.fixture
def resolver(store: CompletionStore) -> BatchCompletionResolver:
    return BatchCompletionResolver(store)


@pytest.fixture
def scanner(store: CompletionStore) -> PeriodResetScanner:
    return PeriodResetScanner(store, ScannerConfig())


@pytest.fixture
def committer(store: CompletionStore, registry: RedisTaskRegistry) -> ResetCommitter:
    return ResetCommitter(store=store, registry=registry, config=CommitterConfig())
