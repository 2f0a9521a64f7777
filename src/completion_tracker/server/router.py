"""Completion REST API.

All routes are mounted under `/api`. Handlers are thin: they read the caller
identity or operator secret, call one tracking component, and map
:class:`TrackerError` to an HTTP status with a ``{code, message}`` detail.
"""

from __future__ import annotations

import hmac
import logging
from collections.abc import Callable
from datetime import date, datetime

from fastapi import APIRouter, Header, HTTPException, Query, Request

from completion_tracker.server.models import (
    ApiTask,
    ConfirmRequest,
    ConfirmResponse,
    InitiateRequest,
    InitiateResponse,
    ResetConfirmResponse,
    ResetScanResponse,
    ResetTriggerResponse,
    TaskListResponse,
)
from completion_tracker.services import TrackerServices
from completion_tracker.tracking.errors import TrackerError
from completion_tracker.tracking.rotation import (
    CommitResult,
    NothingPending,
    ScanReport,
    default_window,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _services(request: Request) -> TrackerServices:
    services = getattr(request.app.state, "services", None)
    if not isinstance(services, TrackerServices):
        # This should never happen for the real app, but keeps the API fail-fast.
        raise HTTPException(status_code=500, detail="Tracker services not configured")
    return services


def _now(request: Request) -> datetime:
    clock: Callable[[], datetime] = request.app.state.clock
    return clock()


def _http_error(error: TrackerError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.to_detail())


def _require_caller(x_user_id: str | None) -> str:
    # Identity is established upstream; this service only requires it to be present.
    caller = (x_user_id or "").strip()
    if not caller:
        raise HTTPException(
            status_code=401,
            detail={"code": "Unauthenticated", "message": "X-User-Id header is required"},
        )
    return caller


def _require_bearer(authorization: str | None, secret: str, setting_name: str) -> None:
    if not secret.strip():
        raise HTTPException(
            status_code=409,
            detail={
                "code": "NotConfigured",
                "message": f"{setting_name} is required for this endpoint",
            },
        )
    expected = f"Bearer {secret}"
    if not hmac.compare_digest((authorization or "").encode(), expected.encode()):
        raise HTTPException(
            status_code=401,
            detail={"code": "Unauthorized", "message": "Invalid operator credentials"},
        )


def _scan_response(report: ScanReport) -> ResetScanResponse:
    return ResetScanResponse(
        batch_id=report.batch_id,
        staged_count=report.staged_count,
        scanned_count=report.scanned_count,
        malformed_count=report.malformed_count,
        window_start=report.window_start,
        window_end=report.window_end,
    )


def _commit_response(result: CommitResult | NothingPending) -> ResetConfirmResponse:
    if isinstance(result, NothingPending):
        return ResetConfirmResponse(batch_id=result.batch_id, nothing_pending=True)
    return ResetConfirmResponse(
        batch_id=result.batch_id,
        deleted_count=result.deleted_count,
        staged_count=result.staged_count,
        users_reset=result.users_reset,
    )


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/completions/initiate", response_model=InitiateResponse)
def initiate_completion(
    body: InitiateRequest,
    request: Request,
    x_user_id: str | None = Header(default=None),
) -> InitiateResponse:
    _require_caller(x_user_id)
    services = _services(request)
    try:
        ticket = services.handshake.initiate(body.task_id.strip(), _now(request))
    except TrackerError as e:
        raise _http_error(e) from e
    return InitiateResponse(completion_key=ticket.completion_key)


@router.post("/completions/confirm", response_model=ConfirmResponse)
def confirm_completion(
    body: ConfirmRequest,
    request: Request,
    x_user_id: str | None = Header(default=None),
) -> ConfirmResponse:
    caller = _require_caller(x_user_id)
    services = _services(request)
    try:
        receipt = services.handshake.confirm(body.completion_key, _now(request), caller)
    except TrackerError as e:
        raise _http_error(e) from e
    return ConfirmResponse(
        completion_key=receipt.completion_key,
        ttl=receipt.ttl,
        expires_at=receipt.expires_at,
        reconfirmed=receipt.reconfirmed,
    )


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks_with_completion(request: Request) -> TaskListResponse:
    services = _services(request)
    try:
        tasks = services.registry.get_all_tasks()
        summary = services.resolver.summarize(tasks, _now(request))
    except TrackerError as e:
        raise _http_error(e) from e
    return TaskListResponse(
        tasks=[
            ApiTask(
                id=item.task.id,
                name=item.task.name,
                score=item.task.score,
                period=item.task.period,
                assignee_id=item.task.assignee_id,
                completed=item.completed,
            )
            for item in summary.tasks
        ],
        total_count=summary.total_count,
        active_count=summary.active_count,
        completed_count=summary.completed_count,
    )


@router.post("/reset/scan", response_model=ResetScanResponse)
def reset_scan(
    request: Request,
    authorization: str | None = Header(default=None),
    window_start: date | None = Query(default=None, alias="windowStart"),
    window_end: date | None = Query(default=None, alias="windowEnd"),
) -> ResetScanResponse:
    services = _services(request)
    _require_bearer(authorization, services.settings.reset_secret, "COMPLETION_RESET_SECRET")

    if (window_start is None) != (window_end is None):
        raise HTTPException(
            status_code=400,
            detail={
                "code": "InvalidWindow",
                "message": "windowStart and windowEnd must be given together",
            },
        )
    if window_start is None or window_end is None:
        window_start, window_end = default_window(
            _now(request).date(), services.scanner.config.window_months
        )

    try:
        report = services.scanner.scan(
            services.scanner.config.key_prefix, window_start, window_end
        )
    except ValueError as e:
        raise HTTPException(
            status_code=400, detail={"code": "InvalidWindow", "message": str(e)}
        ) from e
    except TrackerError as e:
        raise _http_error(e) from e
    return _scan_response(report)


@router.post(
    "/reset/confirm",
    response_model=ResetConfirmResponse,
    response_model_exclude_none=True,
)
def reset_confirm(
    request: Request,
    authorization: str | None = Header(default=None),
) -> ResetConfirmResponse:
    services = _services(request)
    _require_bearer(authorization, services.settings.reset_secret, "COMPLETION_RESET_SECRET")
    try:
        result = services.committer.commit(
            services.scanner.config.batch_id, _now(request)
        )
    except TrackerError as e:
        raise _http_error(e) from e
    return _commit_response(result)


@router.post(
    "/reset/trigger",
    response_model=ResetTriggerResponse,
    response_model_exclude_none=True,
)
def reset_trigger(
    request: Request,
    authorization: str | None = Header(default=None),
) -> ResetTriggerResponse:
    """Scheduled entry point: scan the previous period, then commit it."""

    services = _services(request)
    _require_bearer(authorization, services.settings.cron_secret, "COMPLETION_CRON_SECRET")
    now = _now(request)
    try:
        report = services.scanner.scan_previous_period(now.date())
        result = services.committer.commit(report.batch_id, now)
    except TrackerError as e:
        logger.exception("Scheduled rotation failed")
        raise _http_error(e) from e
    return ResetTriggerResponse(scan=_scan_response(report), commit=_commit_response(result))
