"""Wiring of the tracking components around one explicitly created Redis client."""

from __future__ import annotations

from dataclasses import dataclass

import redis

from completion_tracker.config import TrackerSettings
from completion_tracker.tracking.handshake import CompletionHandshake
from completion_tracker.tracking.registry import RedisTaskRegistry
from completion_tracker.tracking.resolver import BatchCompletionResolver
from completion_tracker.tracking.rotation import PeriodResetScanner, ResetCommitter
from completion_tracker.tracking.store import CompletionStore, create_redis_client


@dataclass(frozen=True, slots=True)
class TrackerServices:
    settings: TrackerSettings
    client: redis.Redis
    store: CompletionStore
    registry: RedisTaskRegistry
    handshake: CompletionHandshake
    resolver: BatchCompletionResolver
    scanner: PeriodResetScanner
    committer: ResetCommitter

    def close(self) -> None:
        self.client.close()


def build_services(
    settings: TrackerSettings, client: redis.Redis | None = None
) -> TrackerServices:
    client = client if client is not None else create_redis_client(settings)
    store = CompletionStore(client)
    registry = RedisTaskRegistry(client)
    return TrackerServices(
        settings=settings,
        client=client,
        store=store,
        registry=registry,
        handshake=CompletionHandshake(registry=registry, store=store, config=settings.handshake),
        resolver=BatchCompletionResolver(store),
        scanner=PeriodResetScanner(store, settings.scanner),
        committer=ResetCommitter(store=store, registry=registry, config=settings.committer),
    )
