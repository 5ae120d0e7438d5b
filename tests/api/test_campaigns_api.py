from datetime import date, datetime, time, timedelta, timezone

from fastapi.testclient import TestClient

from campaign_rollout.crud import campaign_assignment as crud_assignment
from tests.utils.campaign import ORG_ID, create_campaign, create_employees

BASE = f"/api/v1/organizations/{ORG_ID}/campaigns"


def _tomorrow_iso() -> str:
    return datetime.combine(date.today() + timedelta(days=1), time(9, 0), tzinfo=timezone.utc).isoformat()


def test_create_campaign_api(client: TestClient):
    """
    Tests the POST /organizations/{orgId}/campaigns API endpoint.
    """
    request_data = {
        "name": "Annual Security Training",
        "due_date": (date.today() + timedelta(days=30)).isoformat(),
        "reminder_config": [{"days_from_due": -3}, {"days_from_due": 2, "cc_manager": True}],
    }
    response = client.post(BASE, json=request_data)

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Annual Security Training"
    assert data["organization_id"] == ORG_ID
    assert data["status"] == "DRAFT"
    assert data["version"] == 1
    assert data["reminder_config"][1]["cc_manager"] is True


def test_create_campaign_rejects_unordered_reminders(client: TestClient):
    request_data = {
        "name": "Bad reminders",
        "due_date": (date.today() + timedelta(days=30)).isoformat(),
        "reminder_config": [{"days_from_due": 3}, {"days_from_due": -1}],
    }
    assert client.post(BASE, json=request_data).status_code == 422


def test_other_org_is_forbidden(client: TestClient):
    response = client.get("/api/v1/organizations/org_other/campaigns")
    assert response.status_code == 403


def test_list_campaigns_api(client: TestClient, db_session):
    create_campaign(db_session, name="One")
    create_campaign(db_session, name="Two")
    create_campaign(db_session, org_id="org_other", name="Other")

    response = client.get(BASE)

    assert response.status_code == 200
    assert sorted(c["name"] for c in response.json()) == ["One", "Two"]


def test_get_missing_campaign_returns_404(client: TestClient):
    response = client.get(f"{BASE}/cmpn_missing")

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


def test_schedule_and_cancel_schedule_api(client: TestClient, db_session):
    create_employees(db_session, 4)
    campaign = create_campaign(db_session)

    response = client.post(
        f"{BASE}/{campaign.id}/schedule",
        json={"scheduled_at": _tomorrow_iso(), "rollout_config": {"type": "percentage", "values": [50, 50]}},
    )

    assert response.status_code == 201
    data = response.json()
    assert data["rollout_strategy"] == "STAGGERED"
    assert data["wave_count"] == 2

    waves = client.get(f"{BASE}/{campaign.id}/waves").json()
    assert [w["status"] for w in waves] == ["PENDING", "PENDING"]

    response = client.delete(f"{BASE}/{campaign.id}/schedule")
    assert response.status_code == 200
    assert response.json()["status"] == "DRAFT"


def test_schedule_in_the_past_is_rejected(client: TestClient, db_session):
    campaign = create_campaign(db_session)
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()

    response = client.post(f"{BASE}/{campaign.id}/schedule", json={"scheduled_at": past})

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


def test_schedule_requires_timezone(client: TestClient, db_session):
    campaign = create_campaign(db_session)

    response = client.post(f"{BASE}/{campaign.id}/schedule", json={"scheduled_at": "2030-01-01T09:00:00"})

    assert response.status_code == 422


def test_launch_and_lifecycle_api(client: TestClient, db_session):
    create_employees(db_session, 3)
    campaign = create_campaign(db_session)

    response = client.post(f"{BASE}/{campaign.id}/launch")
    assert response.status_code == 200
    assert response.json()["status"] == "ACTIVE"
    assert response.json()["total_assignments"] == 3

    assert client.post(f"{BASE}/{campaign.id}/pause").json()["status"] == "PAUSED"
    assert client.post(f"{BASE}/{campaign.id}/resume").json()["status"] == "ACTIVE"

    response = client.post(f"{BASE}/{campaign.id}/cancel", json={"reason": "Superseded"})
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["status_note"] == "Superseded"


def test_launch_without_audience_is_rejected(client: TestClient, db_session):
    campaign = create_campaign(db_session)

    response = client.post(f"{BASE}/{campaign.id}/launch")

    assert response.status_code == 400
    assert "no target employees" in response.json()["detail"]


def test_invalid_transition_returns_409(client: TestClient, db_session):
    campaign = create_campaign(db_session)

    response = client.post(f"{BASE}/{campaign.id}/pause")

    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_TRANSITION"


def test_update_rules_api(client: TestClient, db_session):
    create_employees(db_session, 2)
    campaign = create_campaign(db_session)

    response = client.patch(f"{BASE}/{campaign.id}", json={"name": "Renamed"})
    assert response.status_code == 200
    assert response.json()["version"] == 2

    client.post(f"{BASE}/{campaign.id}/launch")

    response = client.patch(f"{BASE}/{campaign.id}", json={"due_date": "2031-01-01"})
    assert response.status_code == 400
    assert response.json()["error_code"] == "FIELD_EDIT_NOT_ALLOWED"
    assert response.json()["details"]["fields"] == ["due_date"]

    response = client.patch(f"{BASE}/{campaign.id}", json={"status_note": "Going well"})
    assert response.status_code == 200
    assert response.json()["status_note"] == "Going well"


def test_reminder_sequence_api(client: TestClient, db_session):
    campaign = create_campaign(db_session)

    default = client.get(f"{BASE}/{campaign.id}/reminders").json()
    assert [s["days_from_due"] for s in default["steps"]] == [-5, -1, 3, 7]

    response = client.put(
        f"{BASE}/{campaign.id}/reminders",
        json={"steps": [{"days_from_due": -2}, {"days_from_due": 1, "cc_hr": True}]},
    )
    assert response.status_code == 200
    assert response.json()["steps"][1]["cc_hr"] is True

    response = client.put(
        f"{BASE}/{campaign.id}/reminders",
        json={"steps": [{"days_from_due": 1}, {"days_from_due": 1}]},
    )
    assert response.status_code == 422


def test_assignments_and_statistics_api(client: TestClient, db_session):
    create_employees(db_session, 4)
    campaign = create_campaign(db_session)
    client.post(f"{BASE}/{campaign.id}/launch")

    assignments = client.get(f"{BASE}/{campaign.id}/assignments").json()
    assert len(assignments) == 4
    assert assignments[0]["recipient_snapshot"]["first_name"] == "Employee"

    assignment_id = assignments[0]["id"]
    response = client.post(f"{BASE}/{campaign.id}/assignments/{assignment_id}/complete")
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"

    response = client.post(f"{BASE}/{campaign.id}/assignments/{assignment_id}/complete")
    assert response.status_code == 409

    completed = client.get(f"{BASE}/{campaign.id}/assignments", params={"status": "COMPLETED"}).json()
    assert [a["id"] for a in completed] == [assignment_id]

    stats = client.get(f"{BASE}/{campaign.id}/statistics").json()
    assert stats == {"total": 4, "completed": 1, "overdue": 0, "completion_percentage": 25}


def test_complete_assignment_of_another_campaign_returns_404(client: TestClient, db_session, executor):
    create_employees(db_session, 1)
    campaign = create_campaign(db_session)
    other = create_campaign(db_session)
    executor.launch_campaign(db_session, campaign.id)
    assignment = crud_assignment.get_by_campaign(db_session, campaign_id=campaign.id)[0]

    response = client.post(f"{BASE}/{other.id}/assignments/{assignment.id}/complete")

    assert response.status_code == 404


def test_extend_deadline_api(client: TestClient, db_session):
    due = date.today() + timedelta(days=10)
    campaign = create_campaign(db_session, due_date=due)

    response = client.post(f"{BASE}/{campaign.id}/extend-deadline", json={"days": 5})

    assert response.status_code == 200
    assert response.json()["due_date"] == (due + timedelta(days=5)).isoformat()

    response = client.post(f"{BASE}/{campaign.id}/extend-deadline", json={"days": -1})
    assert response.status_code == 400
