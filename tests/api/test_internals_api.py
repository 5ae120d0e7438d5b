from fastapi.testclient import TestClient

from campaign_rollout.core.config import settings


def test_internal_endpoints_require_api_key(client: TestClient):
    assert client.get("/api/v1/internal/scheduler").status_code == 401
    assert client.post("/api/v1/internal/reminders/sweep").status_code == 401


def test_scheduler_status_when_disabled(client: TestClient):
    response = client.get(
        "/api/v1/internal/scheduler", headers={"X-Internal-Api-Key": settings.INTERNAL_API_KEY}
    )

    assert response.status_code == 200
    assert response.json() == {"status": "not_initialized", "jobs": []}


def test_root(client: TestClient):
    assert client.get("/").json() == {"status": "Campaign Rollout Service is running"}
