"""Operator CLI for the completion tracker.

The scheduled rotation can run from cron via `completion-tracker rotate`
instead of the HTTP trigger.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import UTC, date, datetime

from pydantic import ValidationError

from completion_tracker import __version__
from completion_tracker.config import TrackerSettings
from completion_tracker.logging import configure_logging
from completion_tracker.services import build_services
from completion_tracker.tracking.errors import TrackerError
from completion_tracker.tracking.rotation import NothingPending, ScanReport, default_window

logger = logging.getLogger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="completion-tracker",
        description="Completion marker maintenance for recurring tasks",
    )
    parser.add_argument(
        "--version", action="version", version=f"completion-tracker {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    reset_scan = subparsers.add_parser(
        "reset-scan", help="Stage completion markers from a closed window for deletion"
    )
    reset_scan.add_argument(
        "--months",
        type=int,
        default=None,
        help="Full calendar months before the current one to sweep (default from settings)",
    )
    reset_scan.add_argument(
        "--window-start", type=_parse_date, default=None, help="Window start (inclusive)"
    )
    reset_scan.add_argument(
        "--window-end", type=_parse_date, default=None, help="Window end (exclusive)"
    )

    subparsers.add_parser(
        "reset-commit", help="Delete the staged batch and reset score aggregates"
    )

    rotate = subparsers.add_parser(
        "rotate", help="Scan the previous period and commit it (scheduled entry point)"
    )
    rotate.add_argument(
        "--months",
        type=int,
        default=None,
        help="Full calendar months before the current one to sweep (default from settings)",
    )

    status = subparsers.add_parser("status", help="Show a task's completion for a day")
    status.add_argument("--task-id", required=True, help="Task id")
    status.add_argument(
        "--date", type=_parse_date, default=None, help="Day to evaluate (default: today, UTC)"
    )

    score = subparsers.add_parser("score", help="Show a user's score aggregate")
    score.add_argument("--user-id", required=True, help="User id")

    return parser


def _print_scan(report: ScanReport) -> None:
    print(
        f"Staged {report.staged_count} of {report.scanned_count} keys "
        f"({report.malformed_count} malformed) from "
        f"{report.window_start.isoformat()} to {report.window_end.isoformat()} "
        f"as batch {report.batch_id!r}"
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = TrackerSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    services = build_services(settings)
    now = datetime.now(tz=UTC)
    try:
        if args.command == "reset-scan":
            if (args.window_start is None) != (args.window_end is None):
                parser.error("--window-start and --window-end must be given together")
            if args.window_start is not None:
                start, end = args.window_start, args.window_end
            else:
                start, end = default_window(
                    now.date(),
                    settings.scanner.window_months if args.months is None else args.months,
                )
            report = services.scanner.scan(settings.scanner.key_prefix, start, end)
            _print_scan(report)
            return 0

        if args.command == "reset-commit":
            result = services.committer.commit(settings.scanner.batch_id, now)
            if isinstance(result, NothingPending):
                print(f"Nothing pending for batch {result.batch_id!r}")
            else:
                print(
                    f"Deleted {result.deleted_count} of {result.staged_count} staged keys; "
                    f"reset {result.users_reset} score aggregates"
                )
            return 0

        if args.command == "rotate":
            report = services.scanner.scan_previous_period(now.date(), months=args.months)
            _print_scan(report)
            result = services.committer.commit(report.batch_id, now)
            if isinstance(result, NothingPending):
                print(f"Nothing pending for batch {result.batch_id!r}")
            else:
                print(f"Deleted {result.deleted_count} keys; reset {result.users_reset} scores")
            return 0

        if args.command == "status":
            task = services.registry.get_task(args.task_id)
            if task is None:
                print(f"Task not found: {args.task_id}", file=sys.stderr)
                return 1
            when = args.date or now.date()
            (item,) = services.resolver.resolve_many([task], when)
            state = "completed" if item.completed else "active"
            print(f"{task.id} ({task.period.value}) {state} [{item.completion_key}]")
            if item.completed:
                marker = services.store.get_marker(item.completion_key)
                if marker is not None:
                    print(
                        f"  confirmed by {marker.confirmed_by} "
                        f"at {marker.confirmed_at.isoformat()}"
                    )
            return 0

        if args.command == "score":
            score = services.store.get_score(args.user_id)
            if score is None:
                print(f"No score aggregate for user {args.user_id}")
                return 0
            adjusted = (
                score.last_adjusted_at.isoformat() if score.last_adjusted_at else "never"
            )
            print(
                f"{args.user_id}: total={score.total} adjustment={score.adjustment} "
                f"last_adjusted_at={adjusted}"
            )
            return 0

        parser.error(f"Unknown command: {args.command}")
        return 2
    except (TrackerError, ValueError) as e:
        logger.error("Command failed", extra={"command": args.command, "error": str(e)})
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        services.close()


if __name__ == "__main__":
    raise SystemExit(main())
