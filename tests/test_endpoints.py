"""
HTTP contract tests for /periodic and /health.

Each test gets a fresh owner; requests authenticate with that owner's
bearer token. Dates in request bodies are fixed 2024 days so window
boundaries are deterministic.
"""
from datetime import date, timedelta

import pytest

from app.models.task import Task, TaskType
from app.services import periodic_stats


@pytest.fixture()
def periodic_task(client, auth_headers, make_task):
    """POST a weekly boolean recurrence and return the response body."""
    task = make_task(title="Stretch")
    res = client.post(
        "/periodic",
        json={"task_id": task.id, "period_type": "weekly"},
        headers=auth_headers,
    )
    assert res.status_code == 201, res.text
    return res.json()


def _check_in(client, headers, periodic_task_id, **body):
    return client.post(
        "/periodic/complete",
        json={"periodic_task_id": periodic_task_id, **body},
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Health / auth
# ---------------------------------------------------------------------------

def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert res.json()["db"] == "ok"


class TestAuth:

    def test_missing_token(self, client):
        res = client.get("/periodic/upcoming")
        assert res.status_code == 401
        assert res.json()["code"] == "UNAUTHORIZED"

    def test_wrong_scheme(self, client, owner):
        res = client.get("/periodic/upcoming", headers={"Authorization": f"Token {owner.api_token}"})
        assert res.status_code == 401

    def test_unknown_token(self, client):
        res = client.get("/periodic/upcoming", headers={"Authorization": "Bearer nope"})
        assert res.status_code == 401
        assert res.json()["message"] == "Invalid token."


# ---------------------------------------------------------------------------
# Periodic task definition
# ---------------------------------------------------------------------------

class TestCreatePeriodic:

    def test_create_returns_due_date(self, periodic_task):
        assert periodic_task["period_type"] == "weekly"
        assert periodic_task["completion_type"] == "boolean"
        assert periodic_task["next_due_date"] is not None
        assert periodic_task["last_completed_at"] is None

    def test_numeric_target_rendered_as_string(self, client, auth_headers, make_task):
        task = make_task()
        res = client.post(
            "/periodic",
            json={
                "task_id": task.id,
                "period_type": "daily",
                "completion_type": "numeric",
                "target_value": "2.5",
                "unit": "km",
            },
            headers=auth_headers,
        )
        assert res.status_code == 201
        assert isinstance(res.json()["target_value"], str)
        assert float(res.json()["target_value"]) == 2.5

    def test_duplicate_is_conflict(self, client, auth_headers, periodic_task):
        res = client.post(
            "/periodic",
            json={"task_id": periodic_task["task_id"], "period_type": "daily"},
            headers=auth_headers,
        )
        assert res.status_code == 409
        assert res.json()["code"] == "PERIODIC_TASK_EXISTS"

    def test_non_periodic_task_is_conflict(self, client, auth_headers, make_task):
        task = make_task(task_type=TaskType.slow)
        res = client.post(
            "/periodic", json={"task_id": task.id, "period_type": "daily"}, headers=auth_headers
        )
        assert res.status_code == 409
        assert res.json()["code"] == "NOT_PERIODIC_TASK"

    def test_unknown_task(self, client, auth_headers):
        res = client.post(
            "/periodic", json={"task_id": 999_999, "period_type": "daily"}, headers=auth_headers
        )
        assert res.status_code == 404
        assert res.json()["code"] == "NOT_FOUND"

    def test_custom_without_value(self, client, auth_headers, make_task):
        task = make_task()
        res = client.post(
            "/periodic", json={"task_id": task.id, "period_type": "custom"}, headers=auth_headers
        )
        assert res.status_code == 422
        assert res.json()["details"]["field"] == "period_value"

    def test_unknown_period_type_rejected_by_schema(self, client, auth_headers, make_task):
        task = make_task()
        res = client.post(
            "/periodic", json={"task_id": task.id, "period_type": "yearly"}, headers=auth_headers
        )
        assert res.status_code == 422
        assert res.json()["code"] == "VALIDATION_ERROR"
        assert res.json()["details"]["errors"][0]["field"] == "period_type"


class TestUpdatePeriodic:

    def test_partial_update(self, client, auth_headers, periodic_task):
        res = client.put(
            f"/periodic/task/{periodic_task['task_id']}",
            json={"unit": "sessions"},
            headers=auth_headers,
        )
        assert res.status_code == 200
        body = res.json()
        assert body["unit"] == "sessions"
        assert body["period_type"] == "weekly"
        assert body["next_due_date"] == periodic_task["next_due_date"]

    def test_period_change_moves_due_date(self, client, auth_headers, periodic_task):
        res = client.put(
            f"/periodic/task/{periodic_task['task_id']}",
            json={"period_type": "custom", "period_value": 2},
            headers=auth_headers,
        )
        assert res.status_code == 200
        assert res.json()["period_value"] == 2
        assert res.json()["next_due_date"] != periodic_task["next_due_date"]

    def test_empty_body(self, client, auth_headers, periodic_task):
        res = client.put(
            f"/periodic/task/{periodic_task['task_id']}", json={}, headers=auth_headers
        )
        assert res.status_code == 422

    def test_get_detail(self, client, auth_headers, periodic_task):
        res = client.get(f"/periodic/task/{periodic_task['task_id']}", headers=auth_headers)
        assert res.status_code == 200
        body = res.json()
        assert body["id"] == periodic_task["id"]
        assert body["title"] == "Stretch"
        assert body["task_status"] == "pending"

    def test_other_owner_sees_nothing(self, client, other_owner, periodic_task):
        headers = {"Authorization": f"Bearer {other_owner.api_token}"}
        res = client.get(f"/periodic/task/{periodic_task['task_id']}", headers=headers)
        assert res.status_code == 404


# ---------------------------------------------------------------------------
# Check-ins and stats
# ---------------------------------------------------------------------------

class TestCheckIn:

    def test_check_in_updates_window(self, client, auth_headers, periodic_task):
        pid = periodic_task["id"]
        res = _check_in(client, auth_headers, pid, completion_date="2024-03-13", notes="am")
        assert res.status_code == 201, res.text
        body = res.json()
        assert body["next_due_date"] == "2024-03-20"
        assert body["completion"]["effective_date"] == "2024-03-13"
        assert body["completion"]["completion_value"] is None
        assert body["stats"] == {
            "ok": True,
            "reference_date": "2024-03-13",
            "period_start": "2024-03-11",
            "period_end": "2024-03-17",
            "actual_count": 1,
            "error": None,
        }

        _check_in(client, auth_headers, pid, completion_date="2024-03-15")
        stats = client.get(f"/periodic/{pid}/stats", headers=auth_headers).json()
        assert stats["total"] == 1
        window = stats["items"][0]
        assert (window["expected_count"], window["actual_count"]) == (7, 2)

    def test_numeric_check_in_requires_value(self, client, auth_headers, make_task):
        task = make_task()
        pt = client.post(
            "/periodic",
            json={"task_id": task.id, "period_type": "daily", "completion_type": "numeric", "target_value": 5},
            headers=auth_headers,
        ).json()
        res = _check_in(client, auth_headers, pt["id"], completion_date="2024-03-20")
        assert res.status_code == 422
        assert res.json()["details"]["field"] == "completion_value"

        res = _check_in(client, auth_headers, pt["id"], completion_date="2024-03-20", completion_value=3)
        assert res.status_code == 201
        window = client.get(f"/periodic/{pt['id']}/stats", headers=auth_headers).json()["items"][0]
        assert float(window["actual_value"]) == 3
        assert float(window["expected_value"]) == 5

    def test_future_date(self, client, auth_headers, periodic_task):
        tomorrow = (date.today() + timedelta(days=2)).isoformat()
        res = _check_in(client, auth_headers, periodic_task["id"], completion_date=tomorrow)
        assert res.status_code == 422
        assert res.json()["code"] == "FUTURE_COMPLETION_DATE"

    def test_default_date_is_today(self, client, auth_headers, periodic_task):
        res = _check_in(client, auth_headers, periodic_task["id"])
        assert res.status_code == 201
        assert res.json()["completion"]["completion_date"] is not None

    def test_stats_failure_reported_not_raised(self, client, auth_headers, periodic_task, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("stats store unavailable")

        monkeypatch.setattr(periodic_stats, "ledger_totals", _boom)
        res = _check_in(client, auth_headers, periodic_task["id"], completion_date="2024-03-13")

        assert res.status_code == 201
        assert res.json()["stats"]["ok"] is False
        assert "stats store unavailable" in res.json()["stats"]["error"]
        listed = client.get(f"/periodic/{periodic_task['id']}/completions", headers=auth_headers)
        assert listed.json()["total"] == 1

    def test_unknown_periodic_task(self, client, auth_headers):
        res = _check_in(client, auth_headers, 424_242)
        assert res.status_code == 404


class TestCompletionEdits:

    def test_move_between_weeks_returns_both_windows(self, client, auth_headers, periodic_task):
        pid = periodic_task["id"]
        cid = _check_in(client, auth_headers, pid, completion_date="2024-03-10").json()["completion"]["id"]
        _check_in(client, auth_headers, pid, completion_date="2024-03-19")

        res = client.put(
            f"/periodic/completions/{cid}",
            json={"completion_date": "2024-03-20"},
            headers=auth_headers,
        )
        assert res.status_code == 200, res.text
        windows = [(s["period_start"], s["actual_count"]) for s in res.json()["stats"]]
        assert windows == [("2024-03-04", 0), ("2024-03-18", 2)]

        stats = client.get(f"/periodic/{pid}/stats", headers=auth_headers).json()["items"]
        assert [(s["period_start"], s["actual_count"]) for s in stats] == [
            ("2024-03-18", 2), ("2024-03-04", 0),
        ]

    def test_delete_keeps_zero_row(self, client, auth_headers, periodic_task):
        pid = periodic_task["id"]
        cid = _check_in(client, auth_headers, pid, completion_date="2024-03-05").json()["completion"]["id"]

        res = client.delete(f"/periodic/completions/{cid}", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["id"] == cid
        assert res.json()["stats"]["actual_count"] == 0

        stats = client.get(f"/periodic/{pid}/stats", headers=auth_headers).json()
        assert stats["items"][0]["actual_count"] == 0
        assert client.get(f"/periodic/{pid}/completions", headers=auth_headers).json()["total"] == 0

    def test_delete_twice(self, client, auth_headers, periodic_task):
        cid = _check_in(
            client, auth_headers, periodic_task["id"], completion_date="2024-03-05"
        ).json()["completion"]["id"]
        client.delete(f"/periodic/completions/{cid}", headers=auth_headers)
        res = client.delete(f"/periodic/completions/{cid}", headers=auth_headers)
        assert res.status_code == 404

    def test_other_owner_cannot_edit(self, client, auth_headers, other_owner, periodic_task):
        cid = _check_in(
            client, auth_headers, periodic_task["id"], completion_date="2024-03-05"
        ).json()["completion"]["id"]
        headers = {"Authorization": f"Bearer {other_owner.api_token}"}
        res = client.put(f"/periodic/completions/{cid}", json={"notes": "x"}, headers=headers)
        assert res.status_code == 404


class TestStatsQueries:

    def test_range_filter_needs_both_bounds(self, client, auth_headers, periodic_task):
        pid = periodic_task["id"]
        for d in ("2024-02-14", "2024-03-13"):
            _check_in(client, auth_headers, pid, completion_date=d)

        everything = client.get(f"/periodic/{pid}/stats", headers=auth_headers).json()
        assert everything["total"] == 2

        only_start = client.get(
            f"/periodic/{pid}/stats", params={"period_start": "2024-03-01"}, headers=auth_headers
        ).json()
        assert only_start["total"] == 2

        ranged = client.get(
            f"/periodic/{pid}/stats",
            params={"period_start": "2024-03-01", "period_end": "2024-03-31"},
            headers=auth_headers,
        ).json()
        assert [w["period_start"] for w in ranged["items"]] == ["2024-03-11"]

    def test_explicit_recompute(self, client, auth_headers, periodic_task):
        pid = periodic_task["id"]
        _check_in(client, auth_headers, pid, completion_date="2024-03-13")
        res = client.post(
            f"/periodic/{pid}/stats/recompute", params={"day": "2024-03-17"}, headers=auth_headers
        )
        assert res.status_code == 200
        assert res.json()["ok"] is True
        assert res.json()["actual_count"] == 1
        assert res.json()["period_start"] == "2024-03-11"

    def test_upcoming(self, client, auth_headers, periodic_task):
        res = client.get("/periodic/upcoming", params={"days": 7}, headers=auth_headers)
        assert res.status_code == 200
        assert [item["id"] for item in res.json()["items"]] == [periodic_task["id"]]

    def test_upcoming_days_bounds(self, client, auth_headers):
        assert client.get("/periodic/upcoming", params={"days": 366}, headers=auth_headers).status_code == 422
        assert client.get("/periodic/upcoming", params={"days": -1}, headers=auth_headers).status_code == 422

    def test_completions_list(self, client, auth_headers, periodic_task):
        pid = periodic_task["id"]
        _check_in(client, auth_headers, pid, completion_date="2024-03-01")
        _check_in(client, auth_headers, pid, completion_date="2024-03-03")
        body = client.get(f"/periodic/{pid}/completions", headers=auth_headers).json()
        assert [c["completion_date"] for c in body["items"]] == ["2024-03-03", "2024-03-01"]


def test_open_read_in_fixture_session_does_not_block_writes(client, db, auth_headers, make_task):
    task = make_task()
    # leave a read transaction open on the fixture session
    assert db.query(Task).filter(Task.id == task.id).one().title == "Run"
    assert db.in_transaction()

    res = client.post(
        "/periodic", json={"task_id": task.id, "period_type": "daily"}, headers=auth_headers
    )
    assert res.status_code == 201, res.text
    res = _check_in(client, auth_headers, res.json()["id"], completion_date="2024-03-13")
    assert res.status_code == 201, res.text
