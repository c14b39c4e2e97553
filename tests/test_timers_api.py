"""HTTP tests for the timers router"""
import httpx
import pytest

from app.features.timers.api import get_timer_events, get_timer_repository, get_timer_service
from app.infra.supabase import reset_supabase_client, set_supabase_client
from app.main import app


@pytest.fixture
async def client(service, repo, events):
    app.dependency_overrides[get_timer_service] = lambda: service
    app.dependency_overrides[get_timer_repository] = lambda: repo
    app.dependency_overrides[get_timer_events] = lambda: events
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def anonymous_client(supabase):
    # Real service, repository and auth dependencies on top of the fake client
    set_supabase_client(supabase)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    reset_supabase_client()


async def create(client, name="Work", duration_seconds=1500) -> str:
    response = await client.post("/api/timers", json={"name": name, "duration_seconds": duration_seconds})
    assert response.status_code == 201, response.text
    return response.json()["id"]


class TestTimersApi:
    async def test_create_and_list(self, client):
        timer_id = await create(client)

        response = await client.get("/api/timers")
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["timers"][0]["id"] == timer_id
        assert body["timers"][0]["state"] == "stopped"
        assert body["timers"][0]["remaining_seconds"] == 1500

    async def test_lifecycle(self, client, clock):
        timer_id = await create(client)

        assert (await client.post(f"/api/timers/{timer_id}/start")).json() == {
            "success": True, "error": None, "error_kind": None,
        }
        clock.advance(60)
        timer = (await client.get(f"/api/timers/{timer_id}")).json()["timer"]
        assert timer["state"] == "running"
        assert timer["remaining_seconds"] == 1440

        response = await client.post(f"/api/timers/{timer_id}/pause", json={"remaining_seconds": 1441})
        assert response.status_code == 200
        timer = (await client.get(f"/api/timers/{timer_id}")).json()["timer"]
        assert timer["state"] == "paused"
        assert timer["remaining_seconds"] == 1441
        assert timer["end_time"] is None

        await client.post(f"/api/timers/{timer_id}/reset")
        timer = (await client.get(f"/api/timers/{timer_id}")).json()["timer"]
        assert timer["state"] == "stopped"
        assert timer["remaining_seconds"] == 1500

    async def test_patch_and_delete(self, client, supabase):
        timer_id = await create(client)

        response = await client.patch(f"/api/timers/{timer_id}", json={"name": "Deep work"})
        assert response.status_code == 200
        assert supabase.row(timer_id)["name"] == "Deep work"

        response = await client.delete(f"/api/timers/{timer_id}")
        assert response.status_code == 200
        assert supabase.rows() == []

    async def test_validation_error_is_400(self, client):
        response = await client.post("/api/timers", json={"name": "Work", "duration_seconds": 0})
        assert response.status_code == 400
        assert response.json()["detail"] == "Duration must be at least 1 second"

    async def test_missing_timer_is_404(self, client):
        response = await client.get("/api/timers/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Timer not found"

    async def test_conflict_is_409(self, client):
        timer_id = await create(client)
        response = await client.post(f"/api/timers/{timer_id}/pause", json={"remaining_seconds": 10})
        assert response.status_code == 409
        assert response.json()["detail"] == "Timer is not running"

    async def test_storage_error_is_500(self, client, supabase):
        supabase.fail_next("timers", "select", "relation \"timers\" does not exist")
        response = await client.get("/api/timers")
        assert response.status_code == 500
        assert response.json()["detail"] == 'relation "timers" does not exist'

    async def test_overview(self, client):
        for name, seconds in [("A", 60), ("B", 120), ("C", 180), ("D", 240), ("E", 300)]:
            await create(client, name, seconds)

        response = await client.get("/api/timers/overview")
        assert response.status_code == 200
        body = response.json()
        assert [row["timer"]["name"] for row in body["rows"]] == ["A", "B", "C", "D"]
        assert body["count"] == 5
        assert body["more_label"] == "+1 more timer"

    async def test_complete_publishes_event(self, client, events):
        received = []
        events.subscribe(received.append)
        timer_id = await create(client, "Pizza", 600)
        await client.post(f"/api/timers/{timer_id}/start")

        response = await client.post(f"/api/timers/{timer_id}/complete")
        assert response.status_code == 200
        assert [event.timer.id for event in received] == [timer_id]

        timer = (await client.get(f"/api/timers/{timer_id}")).json()["timer"]
        assert timer["state"] == "completed"

    async def test_repeated_complete_alerts_once(self, client, events):
        received = []
        events.subscribe(received.append)
        timer_id = await create(client, "Pizza", 600)
        await client.post(f"/api/timers/{timer_id}/start")

        first = await client.post(f"/api/timers/{timer_id}/complete")
        second = await client.post(f"/api/timers/{timer_id}/complete")
        assert first.status_code == second.status_code == 200
        assert first.json()["already_completed"] is False
        assert second.json()["already_completed"] is True
        assert len(received) == 1

    async def test_complete_stopped_timer_publishes_nothing(self, client, events):
        received = []
        events.subscribe(received.append)
        timer_id = await create(client)

        response = await client.post(f"/api/timers/{timer_id}/complete")
        assert response.status_code == 409
        assert received == []


class TestAuthentication:
    async def test_missing_token_is_401(self, anonymous_client, supabase):
        response = await anonymous_client.get("/api/timers")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"
        assert supabase.calls == []

    async def test_malformed_header_is_401(self, anonymous_client):
        response = await anonymous_client.post(
            "/api/timers",
            json={"name": "Work", "duration_seconds": 60},
            headers={"Authorization": "Token abc"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"


class TestPublicEndpoints:
    async def test_health(self, anonymous_client):
        response = await anonymous_client.get("/api/health/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_presets(self, anonymous_client):
        response = await anonymous_client.get("/api/timers/presets")
        assert response.status_code == 200
        assert [p["seconds"] for p in response.json()["presets"]] == [300, 900, 1800, 3600]
