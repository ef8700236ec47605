"""Tests for the FastAPI surface."""

import httpx
import pytest
from fastapi.testclient import TestClient

from main import app


@pytest.fixture
def client(manager):
    """TestClient bound to the fixture manager; the Redis lifespan is not run."""
    app.state.manager = manager
    return TestClient(app)


class TestRoutes:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_providers_include_planned_ones(self, client):
        providers = client.get("/integrations/providers").json()

        names = {p["provider"]: p["is_implemented"] for p in providers}
        assert names["youtube"] is True
        assert names["google-drive"] is False

    def test_create_integration(self, client, manager):
        response = client.post("/integrations/todoist", data={"api_key": "abc"})

        assert response.status_code == 200
        body = response.json()
        assert body["id"].startswith("todoist-")
        assert body["status"] == "disconnected"
        assert body["capabilities"]["can_export"] is True
        assert manager.get_integration(body["id"]).access_token == "abc"

    def test_unknown_provider_maps_to_400(self, client):
        response = client.post("/integrations/friendster")

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "unsupported_provider"
        assert body["provider"] == "friendster"

    def test_unknown_integration_maps_to_404(self, client):
        response = client.post("/integrations/todoist-nope/authenticate")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_import_before_connect_maps_to_409(self, client, manager):
        integration_id = manager.create_integration("todoist")

        response = client.post(f"/integrations/{integration_id}/import")

        assert response.status_code == 409
        assert response.json()["error"] == "not_connected"

    def test_bulk_import_returns_one_result_per_id(self, client, manager):
        integration_id = manager.create_integration("notion")

        response = client.post("/integrations/bulk-import", json=[integration_id, "gone"])

        assert response.status_code == 200
        results = response.json()
        assert [r["provider"] for r in results] == ["notion", "unknown"]
        assert all(r["total_items"] == 0 and r["errors"] for r in results)

    def test_summary(self, client, manager):
        manager.create_integration("onenote")

        summary = client.get("/integrations/summary").json()

        assert summary["total"] == 1
        assert summary["by_provider"] == {"onenote": 1}

    def test_delete_integration(self, client, manager):
        integration_id = manager.create_integration("todoist")

        response = client.delete(f"/integrations/{integration_id}")

        assert response.status_code == 200
        assert manager.get_integration(integration_id) is None

    def test_youtube_batch_import(self, client, manager, api):
        api.add(
            "GET",
            "https://www.googleapis.com/youtube/v3/search",
            httpx.Response(200, json={"kind": "youtube#searchListResponse"}),
        )
        api.add(
            "GET",
            "https://www.googleapis.com/youtube/v3/videos",
            httpx.Response(200, json={"items": [{"snippet": {"title": "Talk"}}]}),
        )
        api.add("GET", "https://www.youtube.com/watch", httpx.Response(200, text="<html></html>"))
        integration_id = manager.create_integration("youtube")
        assert client.post(f"/integrations/{integration_id}/authenticate").status_code == 200

        response = client.post(
            f"/integrations/{integration_id}/youtube/batch",
            json=["https://youtu.be/v1", "https://example.com/x"],
            params={"category_id": "learning"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["imported_items"] == 1
        assert body["failed_items"] == 1
