from fastapi.testclient import TestClient

from tests.utils.campaign import ORG_ID, create_campaign

BASE = f"/api/v1/organizations/{ORG_ID}/campaigns"


def test_translation_staleness_api(client: TestClient, db_session):
    """
    Tests GET /campaigns/{campaignId}/translations, GET /campaigns/translations/stale
    and POST /campaigns/{campaignId}/translations/mark-updated.
    """
    parent = create_campaign(db_session)
    french = create_campaign(db_session, parent_campaign_id=parent.id, language="fr")

    response = client.patch(f"{BASE}/{parent.id}", json={"name": "Renamed"})
    assert response.status_code == 200
    assert response.json()["version"] == 2

    response = client.get(f"{BASE}/{parent.id}/translations")
    assert response.status_code == 200
    data = response.json()
    assert data[0]["campaign_id"] == french.id
    assert data[0]["is_stale"] is True

    response = client.get(f"{BASE}/translations/stale")
    assert response.status_code == 200
    assert response.json() == [
        {"campaign_id": parent.id, "name": "Renamed", "current_version": 2, "stale_languages": ["fr"]}
    ]

    response = client.post(f"{BASE}/{french.id}/translations/mark-updated")
    assert response.status_code == 200
    assert response.json()["parent_version"] == 2
    assert client.get(f"{BASE}/translations/stale").json() == []


def test_mark_updated_on_source_campaign_is_rejected(client: TestClient, db_session):
    parent = create_campaign(db_session)

    response = client.post(f"{BASE}/{parent.id}/translations/mark-updated")

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"
