from fastapi.testclient import TestClient

from tests.utils.campaign import ORG_ID, create_employees


def test_preview_audience_api(client: TestClient, db_session):
    create_employees(db_session, 3)
    create_employees(
        db_session, 2, prefix="eng", department="Engineering", department_id="dept_eng"
    )

    response = client.post(
        f"/api/v1/organizations/{ORG_ID}/audience/preview",
        json={"mode": "SIMPLE", "departments": ["dept_eng"]},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["description"] == "Engineering department"
    assert {r["id"] for r in data["sample"]} == {"eng_000", "eng_001"}


def test_segment_mode_requires_segment(client: TestClient):
    response = client.post(
        f"/api/v1/organizations/{ORG_ID}/audience/preview", json={"mode": "SEGMENT"}
    )
    assert response.status_code == 422
