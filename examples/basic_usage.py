#!/usr/bin/env python3
"""Programmatic completion example.

This demonstrates using the tracker components directly:

* load settings from `.env`
* initiate and confirm a completion for one task
* list every task with its completion status for today

The task must already exist under `task:<id>` in Redis.
"""

from __future__ import annotations

import argparse
from datetime import UTC, datetime
from typing import Sequence

from completion_tracker.config import TrackerSettings
from completion_tracker.logging import configure_logging
from completion_tracker.services import build_services
from completion_tracker.tracking.errors import TrackerError


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mark a task complete (programmatic example).")
    parser.add_argument("--task-id", required=True, help="Task to complete")
    parser.add_argument("--user-id", default="example-user", help="Recorded as confirmedBy")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = TrackerSettings()
    configure_logging(settings.log_level)

    services = build_services(settings)
    now = datetime.now(tz=UTC)
    try:
        ticket = services.handshake.initiate(args.task_id, now)
        receipt = services.handshake.confirm(ticket.completion_key, now, args.user_id)
        summary = services.resolver.summarize(services.registry.get_all_tasks(), now)
    except TrackerError as exc:
        print(str(exc))
        return 1
    finally:
        services.close()

    print(f"Confirmed {receipt.completion_key} (expires {receipt.expires_at.isoformat()})")
    print(f"{summary.completed_count}/{summary.total_count} tasks completed")
    for item in summary.tasks:
        mark = "x" if item.completed else " "
        print(f"[{mark}] {item.task.name} ({item.task.period.value})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
