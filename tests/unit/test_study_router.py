"""
API tests for the study and job routers.

The database-backed services are replaced through dependency_overrides with
the in-memory adapters from tests/fakes.py. Requests run against the real
clock, so fixtures only use cards that are already due.
"""

import pytest
from fastapi.testclient import TestClient

from skillpath.api.dependencies import get_study_services
from skillpath.api.main import app
from skillpath.core.modes import CardState
from tests.fakes import due_state, future_state

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client(services):
    app.dependency_overrides[get_study_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def start(client, **body):
    payload = {"goal_id": "goal-1", **body}
    return client.post("/api/study/session", json=payload, headers=HEADERS)


class TestHealth:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "skillpath"

    def test_config_hides_credentials(self, client):
        data = client.get("/config").json()

        assert "postgres:postgres" not in data["database_url"]
        assert data["timed"] == {"duration_seconds": 300, "points_per_card": 10}


class TestSessionEndpoints:
    def test_requires_user_header(self, client, goal_tree):
        response = client.post("/api/study/session", json={"goal_id": "goal-1"})

        assert response.status_code == 401

    def test_start_session(self, client, goal_tree):
        response = start(client)

        assert response.status_code == 200
        data = response.json()
        assert sorted(data["session"]["card_ids"]) == ["c1", "c2", "c3", "c4"]
        assert [c["id"] for c in data["cards"]] == data["session"]["card_ids"]
        assert {c["card_type"] for c in data["cards"]} == {"flashcard"}
        assert data["session"]["status"] == "active"
        assert data["guided"] is None

    def test_unknown_goal_is_404(self, client, goal_tree):
        response = start(client, goal_id="missing")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    def test_empty_scope_is_400(self, client, card_store):
        card_store.add_goal()
        card_store.add_node("node-1", "1")

        response = start(client)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "no_cards_available"

    def test_invalid_mode_is_422(self, client, goal_tree):
        assert start(client, mode="speedrun").status_code == 422

    def test_guided_start_with_completed_tree_returns_no_session(self, client, goal_tree):
        for card in goal_tree.cards.values():
            card.scheduling = future_state(days_ahead=400, state=CardState.REVIEW)

        data = start(client, is_guided=True).json()

        assert data["session"] is None
        assert data["cards"] == []
        assert data["guided"]["outcome"] == "tree_complete"
        assert data["guided"]["is_tree_complete"] is True

    def test_guided_start_reports_current_node(self, client, goal_tree):
        data = start(client, is_guided=True, include_children=False).json()

        assert data["guided"]["current_node"]["id"] == "node-1"
        assert data["guided"]["total_in_node"] == 2
        assert data["session"]["is_guided"] is True

    def test_rate_then_duplicate(self, client, goal_tree):
        session = start(client).json()["session"]
        body = {"session_id": session["id"], "card_id": session["card_ids"][0], "rating": 3}

        first = client.post("/api/study/session/rate", json=body, headers=HEADERS)
        again = client.post("/api/study/session/rate", json=body, headers=HEADERS)

        assert first.status_code == 200
        assert first.json()["current_index"] == 1
        assert first.json()["remaining"] == 3
        assert first.json()["adjusted"] is False
        assert again.status_code == 400
        assert again.json()["detail"]["code"] == "conflict"

    def test_rating_out_of_range_is_422(self, client, goal_tree):
        session = start(client).json()["session"]
        body = {"session_id": session["id"], "card_id": session["card_ids"][0], "rating": 5}

        assert client.post("/api/study/session/rate", json=body, headers=HEADERS).status_code == 422

    def test_complete_is_idempotent(self, client, goal_tree):
        session = start(client).json()["session"]
        body = {
            "session_id": session["id"],
            "duration_seconds": 90,
            "ratings": [{"card_id": session["card_ids"][0], "rating": 4}],
        }

        first = client.post("/api/study/session/complete", json=body, headers=HEADERS)
        second = client.post("/api/study/session/complete", json=body, headers=HEADERS)

        assert first.status_code == 200
        assert first.json()["summary"]["cards_studied"] == 1
        assert first.json()["summary"]["retention_rate"] == 100
        assert [m["level"] for m in first.json()["mastery_updates"]] == ["novice"]
        assert second.json() == first.json()
        assert goal_tree.goal_time_added["goal-1"] == 90

    def test_resume_and_ownership(self, client, goal_tree):
        session = start(client).json()["session"]
        body = {"session_id": session["id"]}

        resumed = client.post("/api/study/session/resume", json=body, headers=HEADERS)
        foreign = client.post("/api/study/session/resume", json=body, headers={"X-User-Id": "intruder"})

        assert resumed.status_code == 200
        assert [c["id"] for c in resumed.json()["cards"]] == session["card_ids"]
        assert foreign.status_code == 403

    def test_active_and_abandon(self, client, goal_tree):
        session = start(client).json()["session"]

        active = client.get("/api/study/session/active", params={"goal_id": "goal-1"}, headers=HEADERS)
        abandoned = client.post(
            "/api/study/session/abandon", json={"session_id": session["id"]}, headers=HEADERS
        )
        after = client.get("/api/study/session/active", headers=HEADERS)

        assert active.json()["session"]["id"] == session["id"]
        assert active.json()["progress_percent"] == 0
        assert abandoned.json()["status"] == "abandoned"
        assert after.json()["session"] is None

    def test_next_node(self, client, goal_tree):
        data = client.get("/api/study/next-node", params={"goal_id": "goal-1"}, headers=HEADERS).json()

        assert data["node"]["path"] == "1"
        assert data["outcome"] is None
        assert data["summary"]["total_nodes"] == 3

    def test_unexpected_error_is_500(self, client, goal_tree, manager):
        async def broken(*args, **kwargs):
            raise RuntimeError("database went away")

        manager.start = broken

        response = start(client)

        assert response.status_code == 500


class TestDeckEndpoints:
    @pytest.fixture
    def deck(self, card_store):
        card_store.add_deck(new_cards_per_day_override=7)
        card_store.add_card("d1", None, due_state(days_ago=3))
        card_store.add_card("d2", None, due_state(days_ago=2))
        card_store.deck_members["deck-1"] = ["d1", "d2"]
        return card_store

    def test_deck_session_reports_settings_sources(self, client, deck):
        response = client.post(
            "/api/study/deck-session", json={"deck_id": "deck-1", "cards_per_session": 10}, headers=HEADERS
        )

        data = response.json()
        assert response.status_code == 200
        assert data["settings"] == {
            "new_cards_per_day": 7,
            "cards_per_session": 10,
            "source": {"new_cards_per_day": "deck", "cards_per_session": "session"},
        }
        assert data["sync_interval_seconds"] == 5
        assert sorted(data["session"]["card_ids"]) == ["d1", "d2"]

    def test_detect_changes(self, client, deck):
        deck.add_card("d3", None, due_state(days_ago=1))
        deck.deck_members["deck-1"] = ["d1", "d3"]

        data = client.post(
            "/api/study/deck-session/changes",
            json={"deck_id": "deck-1", "original_card_ids": ["d1", "d2"]},
            headers=HEADERS,
        ).json()

        assert [c["id"] for c in data["added_cards"]] == ["d3"]
        assert data["removed_card_ids"] == ["d2"]
        assert data["has_changes"] is True

    def test_sync_persisted_session(self, client, deck):
        session = client.post("/api/study/deck-session", json={"deck_id": "deck-1"}, headers=HEADERS).json()[
            "session"
        ]
        deck.deck_members["deck-1"] = ["d1"]

        data = client.post(f"/api/study/deck-session/{session['id']}/sync", headers=HEADERS).json()
        resumed = client.post(
            "/api/study/session/resume", json={"session_id": session["id"]}, headers=HEADERS
        ).json()

        assert data["removed_card_ids"] == ["d2"]
        assert "d2" not in resumed["session"]["card_ids"]

    def test_foreign_deck_is_403(self, client, card_store):
        card_store.add_deck(user_id="someone-else")

        response = client.post("/api/study/deck-session", json={"deck_id": "deck-1"}, headers=HEADERS)

        assert response.status_code == 403


class TestJobEndpoints:
    def test_pending_job_is_202_then_200(self, client, goal_tree, job_queue):
        cards = start(client, mode="multiple_choice").json()["cards"]
        job_id = cards[0]["distractors_job_id"]

        pending = client.get(f"/api/jobs/{job_id}", headers=HEADERS)
        job_queue.finish(job_id, {"distractors": ["a", "b", "c"]})
        done = client.get(f"/api/jobs/{job_id}", headers=HEADERS)

        assert cards[0]["card_type"] == "multiple_choice"
        assert pending.status_code == 202
        assert pending.json()["type"] == "distractor_generation"
        assert done.status_code == 200
        assert done.json()["result"] == {"distractors": ["a", "b", "c"]}

    def test_other_users_job_is_404(self, client, goal_tree, job_queue):
        cards = start(client, mode="multiple_choice").json()["cards"]

        response = client.get(f"/api/jobs/{cards[0]['distractors_job_id']}", headers={"X-User-Id": "intruder"})

        assert response.status_code == 404
