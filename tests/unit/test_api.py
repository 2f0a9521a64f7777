"""REST surface tests against an in-memory Redis."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import fakeredis
import pytest
from fastapi.testclient import TestClient

from completion_tracker.config import TrackerSettings
from completion_tracker.server.app import create_app
from completion_tracker.tracking.store import reset_batch_key, score_key

AUG_13 = datetime(2025, 8, 13, 9, 30, tzinfo=UTC)
USER = {"X-User-Id": "user-1"}
OPERATOR = {"Authorization": "Bearer op-secret"}
SCHEDULER = {"Authorization": "Bearer cron-secret"}


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(AUG_13)


@pytest.fixture
def client(monkeypatch, redis_client, clock) -> TestClient:
    monkeypatch.setenv("COMPLETION_RESET_SECRET", "op-secret")
    monkeypatch.setenv("COMPLETION_CRON_SECRET", "cron-secret")
    settings = TrackerSettings(_env_file=None)
    return TestClient(create_app(settings, redis_client=redis_client, clock=clock))


def test_health(client) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}


def test_initiate_confirm_and_list(client, add_task, clock) -> None:
    add_task("t1", period="daily")
    add_task("t2", period="weekly", assigneeId="2")

    initiated = client.post("/api/completions/initiate", json={"taskId": "t1"}, headers=USER)
    assert initiated.status_code == 200
    key = initiated.json()["completionKey"]
    assert key == "completion:daily:t1:2025-08-13"

    confirmed = client.post("/api/completions/confirm", json={"completionKey": key}, headers=USER)
    assert confirmed.status_code == 200
    body = confirmed.json()
    assert body["completionKey"] == key
    assert body["ttl"] == 7_776_000
    assert body["reconfirmed"] is False
    expires_at = datetime.fromisoformat(body["expiresAt"].replace("Z", "+00:00"))
    assert expires_at == datetime(2025, 11, 11, 9, 30, tzinfo=UTC)

    listing = client.get("/api/tasks").json()
    assert listing["totalCount"] == 2
    assert listing["completedCount"] == 1
    assert listing["activeCount"] == 1
    assert [(t["id"], t["completed"]) for t in listing["tasks"]] == [("t1", True), ("t2", False)]
    assert listing["tasks"][1]["assigneeId"] == "2"

    clock.now = datetime(2025, 8, 14, 8, 0, tzinfo=UTC)
    next_day = client.get("/api/tasks").json()
    assert next_day["completedCount"] == 0


def test_mutating_calls_require_caller_identity(client, add_task) -> None:
    add_task("t1")

    resp = client.post("/api/completions/initiate", json={"taskId": "t1"})
    assert resp.status_code == 401

    resp = client.post(
        "/api/completions/confirm", json={"completionKey": "completion:daily:t1:2025-08-13"}
    )
    assert resp.status_code == 401


def test_initiate_errors_carry_stable_codes(client, add_task, redis_client) -> None:
    resp = client.post("/api/completions/initiate", json={"taskId": "ghost"}, headers=USER)
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "TaskNotFound"

    redis_client.set("task:broken", json.dumps({"id": "broken", "name": "x", "score": "lots"}))
    resp = client.post("/api/completions/initiate", json={"taskId": "broken"}, headers=USER)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "MalformedTask"


def test_confirm_rejects_invalid_keys(client, redis_client) -> None:
    resp = client.post(
        "/api/completions/confirm",
        json={"completionKey": "task:completion:daily:t1:2025-08-13"},
        headers=USER,
    )
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["code"] == "InvalidCompletionKey"
    assert "completion:<period>:<taskId>:<datePart>" in detail["message"]
    assert redis_client.dbsize() == 0


def test_confirm_does_not_trim_padded_keys(client, redis_client) -> None:
    resp = client.post(
        "/api/completions/confirm",
        json={"completionKey": "  completion:daily:t1:2025-08-13 "},
        headers=USER,
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "InvalidCompletionKey"
    assert redis_client.dbsize() == 0


def test_reconfirm_is_accepted(client) -> None:
    key = "completion:daily:t1:2025-08-13"
    client.post("/api/completions/confirm", json={"completionKey": key}, headers=USER)
    again = client.post("/api/completions/confirm", json={"completionKey": key}, headers=USER)

    assert again.status_code == 200
    assert again.json()["reconfirmed"] is True


def test_reset_routes_require_the_operator_secret(client) -> None:
    assert client.post("/api/reset/scan").status_code == 401
    assert client.post("/api/reset/scan", headers=SCHEDULER).status_code == 401
    bare = {"Authorization": "op-secret"}
    assert client.post("/api/reset/confirm", headers=bare).status_code == 401
    assert client.post("/api/reset/trigger", headers=OPERATOR).status_code == 401


def test_reset_routes_refuse_when_secret_unset(monkeypatch, redis_client) -> None:
    monkeypatch.delenv("COMPLETION_RESET_SECRET", raising=False)
    app = create_app(TrackerSettings(_env_file=None), redis_client=redis_client)

    resp = TestClient(app).post("/api/reset/scan", headers={"Authorization": "Bearer "})

    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "NotConfigured"


def test_reset_scan_then_confirm(client, redis_client, add_task) -> None:
    add_task("t1", assigneeId="1")
    redis_client.hset(score_key("1"), mapping={"total": 90, "adjustment": 10})
    for key in (
        "completion:daily:t1:2025-06-30",
        "completion:daily:t1:2025-07-15",
        "completion:daily:t1:2025-08-13",
    ):
        redis_client.set(key, "{}")

    scan = client.post("/api/reset/scan", headers=OPERATOR)
    assert scan.status_code == 200
    assert scan.json() == {
        "batchId": "completionKeys",
        "stagedCount": 1,
        "scannedCount": 3,
        "malformedCount": 0,
        "windowStart": "2025-07-01",
        "windowEnd": "2025-08-01",
    }

    confirm = client.post("/api/reset/confirm", headers=OPERATOR)
    assert confirm.status_code == 200
    assert confirm.json() == {
        "batchId": "completionKeys",
        "deletedCount": 1,
        "stagedCount": 1,
        "usersReset": 1,
    }
    assert redis_client.exists("completion:daily:t1:2025-07-15") == 0
    assert redis_client.exists("completion:daily:t1:2025-08-13") == 1
    assert redis_client.hget(score_key("1"), "total") == "0"

    again = client.post("/api/reset/confirm", headers=OPERATOR)
    assert again.status_code == 200
    assert again.json() == {"batchId": "completionKeys", "nothingPending": True}


def test_reset_scan_with_explicit_window(client, redis_client) -> None:
    for key in (
        "completion:daily:t1:2025-05-15",
        "completion:daily:t1:2025-06-15",
        "completion:daily:t1:2025-07-15",
    ):
        redis_client.set(key, "{}")

    resp = client.post(
        "/api/reset/scan",
        params={"windowStart": "2025-06-01", "windowEnd": "2025-07-01"},
        headers=OPERATOR,
    )

    assert resp.json()["stagedCount"] == 1
    assert json.loads(redis_client.get(reset_batch_key("completionKeys"))) == [
        "completion:daily:t1:2025-06-15"
    ]


@pytest.mark.parametrize(
    "params",
    [
        {"windowStart": "2025-06-01"},
        {"windowStart": "2025-07-01", "windowEnd": "2025-06-01"},
    ],
)
def test_reset_scan_rejects_bad_windows(client, params) -> None:
    resp = client.post("/api/reset/scan", params=params, headers=OPERATOR)

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "InvalidWindow"


def test_scheduled_trigger_runs_scan_and_commit(client, redis_client) -> None:
    redis_client.set("completion:monthly:t8:2025-07", "{}")
    redis_client.set("completion:monthly:t8:2025-08", "{}")

    resp = client.post("/api/reset/trigger", headers=SCHEDULER)

    assert resp.status_code == 200
    body = resp.json()
    assert body["scan"]["stagedCount"] == 1
    assert body["commit"]["deletedCount"] == 1
    assert redis_client.exists("completion:monthly:t8:2025-08") == 1


def test_store_outage_surfaces_as_503() -> None:
    server = fakeredis.FakeServer()
    server.connected = False
    down = fakeredis.FakeRedis(server=server, decode_responses=True)
    client = TestClient(create_app(TrackerSettings(_env_file=None), redis_client=down))

    resp = client.get("/api/tasks")

    assert resp.status_code == 503
    assert resp.json()["detail"]["code"] == "StoreUnavailable"
