"""
API Tests for the Planner and Leaderboard Routers.

Runs the FastAPI app against the in-memory repository through dependency
overrides. Dates are relative to the real clock because endpoints do not
take a reference time.

Tests for:
- Identity header enforcement
- Schedule, snooze and session endpoints end to end
- ServiceError to HTTP status mapping (404 / 409 / 422)
- Leaderboard recompute, read and comparison endpoints
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from app.dependencies import get_repository
from app.main import app
from app.routers.leaderboard import get_leaderboard_ranker
from app.services.leaderboard import LeaderboardRanker
from tests.fakes import InMemoryPlannerRepository

HEADERS = {"X-User-Id": "u1"}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def api_repo() -> InMemoryPlannerRepository:
    """Repository with topic t1 whose first repetition is due today."""
    today = datetime.now(timezone.utc).date()
    repo = InMemoryPlannerRepository()
    repo.add_learner("u1", "Ada")
    repo.add_learner("u2", "Grace")
    repo.add_topic(
        "t1",
        "u1",
        frequency=[7, 14],
        subject="Maths",
        title="Integrals",
        first_studied=today - timedelta(days=7),
    )
    return repo


@pytest.fixture
def client(api_repo):
    """Test client wired to the in-memory repository."""
    app.dependency_overrides[get_repository] = lambda: api_repo
    app.dependency_overrides[get_leaderboard_ranker] = lambda: LeaderboardRanker(api_repo)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def scheduled_client(client):
    response = client.post("/api/planner/topics/t1/schedule", json={}, headers=HEADERS)
    assert response.status_code == 200
    return client


# =============================================================================
# Identity
# =============================================================================


class TestIdentity:
    """Tests for the X-User-Id requirement."""

    def test_missing_header_is_unauthorized(self, client):
        response = client.get("/api/planner/due")

        assert response.status_code == 401

    def test_blank_header_is_unauthorized(self, client):
        response = client.get("/api/planner/due", headers={"X-User-Id": "  "})

        assert response.status_code == 401


# =============================================================================
# Schedules
# =============================================================================


class TestScheduleEndpoints:
    """Tests for schedule endpoints."""

    def test_create_schedule(self, client):
        response = client.post(
            "/api/planner/topics/t1/schedule", json={}, headers=HEADERS
        )

        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["cycle"] for e in entries] == [7, 14]
        assert entries[0]["status"] == "due_today"
        assert entries[1]["status"] == "upcoming"

    def test_create_twice_conflicts(self, scheduled_client):
        response = scheduled_client.post(
            "/api/planner/topics/t1/schedule", json={}, headers=HEADERS
        )

        assert response.status_code == 409
        assert response.json()["error"] == "invalid_state_transition"

    def test_invalid_offsets(self, client):
        response = client.post(
            "/api/planner/topics/t1/schedule",
            json={"offsets": [7, 7]},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_other_users_topic_is_not_found(self, client):
        response = client.get(
            "/api/planner/topics/t1/schedule", headers={"X-User-Id": "u2"}
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_unknown_request_field_is_rejected(self, client):
        response = client.post(
            "/api/planner/topics/t1/schedule",
            json={"offsetz": [1]},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_due_entries(self, scheduled_client):
        response = scheduled_client.get("/api/planner/due", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert len(body["due_today"]) == 1
        assert body["due_today"][0]["title"] == "Integrals"
        assert body["overdue"] == []
        assert body["snoozed"] == []


# =============================================================================
# Snooze
# =============================================================================


class TestSnoozeEndpoint:
    """Tests for the snooze endpoint."""

    def test_snooze_all_with_cascade(self, scheduled_client, api_repo):
        today = datetime.now(timezone.utc).date()

        response = scheduled_client.post(
            "/api/planner/snooze",
            json={"target": "all", "days": 3, "cascade": True},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["new_dates"] == [
            (today + timedelta(days=3)).isoformat(),
            (today + timedelta(days=10)).isoformat(),
        ]
        due = scheduled_client.get("/api/planner/due", headers=HEADERS).json()
        assert due["due_today"] == []
        assert due["snoozed"][0]["snooze"]["days"] == 3

    @pytest.mark.parametrize("days", [0, 31])
    def test_out_of_range_days(self, scheduled_client, days):
        response = scheduled_client.post(
            "/api/planner/snooze",
            json={"target": "all", "days": days},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_unknown_entry(self, scheduled_client):
        response = scheduled_client.post(
            "/api/planner/snooze",
            json={"target": "nope", "days": 2},
            headers=HEADERS,
        )

        assert response.status_code == 404


# =============================================================================
# Sessions
# =============================================================================


class TestSessionEndpoints:
    """Tests for the session lifecycle endpoints."""

    def _start(self, client):
        return client.post(
            "/api/planner/sessions",
            json={"topic_id": "t1", "planned_seconds": 1500},
            headers=HEADERS,
        )

    def test_start_and_finish(self, scheduled_client):
        started = self._start(scheduled_client)
        assert started.status_code == 201
        session_id = started.json()["session_id"]

        finished = scheduled_client.post(
            f"/api/planner/sessions/{session_id}/finish",
            json={"actual_seconds": 1320, "rating": "Good", "notes": "ok"},
            headers=HEADERS,
        )

        assert finished.status_code == 200
        body = finished.json()
        assert body["cycle_advanced"] is True
        today = datetime.now(timezone.utc).date()
        assert body["next_due_date"] == (today + timedelta(days=7)).isoformat()

        session = scheduled_client.get(
            f"/api/planner/sessions/{session_id}", headers=HEADERS
        ).json()
        assert session["status"] == "finished"
        assert session["rating"] == "Good"

    def test_second_start_conflicts(self, scheduled_client):
        self._start(scheduled_client)

        response = self._start(scheduled_client)

        assert response.status_code == 409
        assert response.json()["error"] == "session_already_active"

    def test_finish_twice_conflicts(self, scheduled_client):
        session_id = self._start(scheduled_client).json()["session_id"]
        payload = {"actual_seconds": 600, "rating": "Easy"}
        scheduled_client.post(
            f"/api/planner/sessions/{session_id}/finish", json=payload, headers=HEADERS
        )

        response = scheduled_client.post(
            f"/api/planner/sessions/{session_id}/finish", json=payload, headers=HEADERS
        )

        assert response.status_code == 409
        assert response.json()["error"] == "session_already_finished"

    def test_invalid_rating(self, scheduled_client):
        session_id = self._start(scheduled_client).json()["session_id"]

        response = scheduled_client.post(
            f"/api/planner/sessions/{session_id}/finish",
            json={"actual_seconds": 600, "rating": "Great"},
            headers=HEADERS,
        )

        assert response.status_code == 422

    def test_pause_resume_abort(self, scheduled_client):
        session_id = self._start(scheduled_client).json()["session_id"]
        base = f"/api/planner/sessions/{session_id}"

        assert scheduled_client.post(f"{base}/pause", headers=HEADERS).json()["status"] == "paused"
        assert scheduled_client.post(f"{base}/pause", headers=HEADERS).status_code == 409
        assert scheduled_client.post(f"{base}/resume", headers=HEADERS).json()["status"] == "running"
        assert scheduled_client.post(f"{base}/abort", headers=HEADERS).json()["status"] == "aborted"

    def test_dashboard_endpoints(self, scheduled_client):
        kpis = scheduled_client.get("/api/planner/kpis", headers=HEADERS)
        upcoming = scheduled_client.get(
            "/api/planner/upcoming", params={"days": 7}, headers=HEADERS
        )

        assert kpis.status_code == 200
        assert kpis.json()["due_today"] == 1
        assert upcoming.status_code == 200
        days = upcoming.json()["days"]
        assert len(days) == 7
        assert days[-1]["topic_count"] == 1


# =============================================================================
# Leaderboard
# =============================================================================


class TestLeaderboardEndpoints:
    """Tests for leaderboard endpoints."""

    def test_recompute_then_read(self, scheduled_client):
        recompute = scheduled_client.post(
            "/api/leaderboard/recompute", json={}, headers=HEADERS
        )
        assert recompute.status_code == 200
        assert recompute.json()["published"] is True
        assert recompute.json()["ranked_count"] == 2

        board = scheduled_client.get("/api/leaderboard", headers=HEADERS).json()
        assert [e["rank"] for e in board["entries"]] == [1, 2]
        assert [e["user_id"] for e in board["entries"]] == ["u1", "u2"]
        assert board["entries"][0]["is_current_user"] is True

        comparison = scheduled_client.get(
            "/api/leaderboard/comparison", headers={"X-User-Id": "u2"}
        ).json()
        assert comparison["cohort_size"] == 2
        assert comparison["you"]["rank"] == 2
        assert comparison["struggling"]["rank"] == 2

    def test_empty_leaderboard(self, client):
        response = client.get(
            "/api/leaderboard", params={"window": "month"}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json()["entries"] == []
        assert response.json()["calculated_at"] is None

    def test_subject_scope_requires_id(self, client):
        response = client.post(
            "/api/leaderboard/recompute", json={"scope": "subject"}, headers=HEADERS
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_unknown_window(self, client):
        response = client.get(
            "/api/leaderboard", params={"window": "decade"}, headers=HEADERS
        )

        assert response.status_code == 422
