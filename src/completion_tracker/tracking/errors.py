"""Error taxonomy for the completion tracker.

Every error carries a stable machine-readable ``code`` and the HTTP status the
REST surface maps it to. ``MalformedKey`` is only ever raised by key decoding;
the scanner recovers from it locally.
"""

from __future__ import annotations


class TrackerError(Exception):
    code: str = "TRACKER_ERROR"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class TaskNotFound(TrackerError):
    code = "TaskNotFound"
    status_code = 404

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id!r}")
        self.task_id = task_id


class MalformedTask(TrackerError):
    code = "MalformedTask"
    status_code = 400

    def __init__(self, task_id: str, reason: str) -> None:
        super().__init__(f"Task {task_id!r} has an invalid definition: {reason}")
        self.task_id = task_id
        self.reason = reason


class InvalidCompletionKey(TrackerError):
    code = "InvalidCompletionKey"
    status_code = 400


class AlreadyConfirmed(TrackerError):
    code = "AlreadyConfirmed"
    status_code = 409

    def __init__(self, completion_key: str) -> None:
        super().__init__(f"Completion already confirmed for {completion_key!r}")
        self.completion_key = completion_key


class MalformedKey(TrackerError):
    code = "MalformedKey"
    status_code = 400

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Malformed completion key {key!r}: {reason}")
        self.key = key
        self.reason = reason


class InvalidResetBatch(TrackerError):
    code = "InvalidResetBatch"
    status_code = 500


class StoreUnavailable(TrackerError):
    """The key-value store could not complete a call. Transient; callers own retries."""

    code = "StoreUnavailable"
    status_code = 503
