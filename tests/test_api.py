"""HTTP surface tests (FastAPI TestClient, local simulation)."""
import pytest
from fastapi.testclient import TestClient

from pollsync.main import create_app
from pollsync.persistence import MemorySnapshotStore


@pytest.fixture
def api(config):
    config.force_simulation = True
    app = create_app(config, persistence=MemorySnapshotStore(), participant_id="web-1")
    with TestClient(app) as client:
        yield client


class TestApi:

    def test_status(self, api):
        body = api.get("/status").json()
        assert body["mode"] == "fallback"
        assert body["status"] == "simulated"
        assert body["participant_id"] == "web-1"
        assert body["queued"] == 0
        assert body["connect_attempts"] == 0

    def test_commands_before_join(self, api):
        resp = api.post("/polls", json={"question": "Q", "options": ["a", "b"]})
        assert resp.status_code == 409

    def test_poll_lifecycle(self, api):
        joined = api.post("/session/join", json={"session_id": "demo", "role": "admin"}).json()
        assert joined["outcome"] == "applied"
        assert joined["role"] == "admin"

        resp = api.post("/polls", json={"question": "Pick a color", "options": ["Red", " ", "Blue", ""]})
        assert resp.status_code == 200
        polls = api.get("/polls").json()
        assert [(p["poll_id"], p["is_active"]) for p in polls] == [(1, False)]
        options = api.get("/tables/poll_option").json()
        assert [o["text"] for o in options] == ["Red", "Blue"]

        api.post("/polls/1/activate")
        presentation = api.get("/presentation").json()
        assert presentation["presentation"]["state"] == "voting"
        assert presentation["current_poll"]["question"] == "Pick a color"

        api.post("/vote", json={"poll_id": 1, "option_id": 1})
        api.post("/vote", json={"poll_id": 1, "option_id": 2})
        api.post("/results", params={"poll_id": 1})

        results = api.get("/poll/1").json()
        assert results["total_votes"] == 1
        assert [(o["text"], o["percentage"]) for o in results["options"]] == [("Red", 0), ("Blue", 100)]

        api.post("/session/end")
        assert api.get("/presentation").json()["presentation"]["state"] == "ended"

    def test_poll_needs_two_options(self, api):
        api.post("/session/join", json={"session_id": "demo", "role": "admin"})
        resp = api.post("/polls", json={"question": "Q", "options": ["only", "  "]})
        assert resp.status_code == 422

    def test_invalid_role(self, api):
        resp = api.post("/session/join", json={"session_id": "demo", "role": "root"})
        assert resp.status_code == 422

    def test_unknown_table(self, api):
        assert api.get("/tables/ballots").status_code == 404
