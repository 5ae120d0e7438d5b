from datetime import date, datetime, timedelta, timezone

import pytest

from campaign_rollout.core.exceptions import (
    CampaignValidationError,
    DisallowedFieldEditError,
    InvalidTransitionError,
    NotFoundError,
)
from campaign_rollout.crud import campaign_assignment as crud_assignment
from campaign_rollout.crud import campaign_wave as crud_wave
from campaign_rollout.models.employee import Employee
from campaign_rollout.schemas.campaign import (
    CampaignStatus,
    CampaignUpdate,
    ReminderStep,
    RolloutConfig,
    RolloutStrategy,
    WaveStatus,
)
from tests.utils.campaign import ORG_ID, create_campaign, create_employees


@pytest.fixture
def active_campaign(db_session, lifecycle):
    create_employees(db_session, 4)
    campaign = create_campaign(db_session)
    return lifecycle.launch(db_session, campaign_id=campaign.id, org_id=ORG_ID, user_id="user_123")


class TestEdits:
    def test_draft_content_edit_bumps_version(self, db_session, lifecycle):
        campaign = create_campaign(db_session)

        updated = lifecycle.update(
            db_session,
            campaign_id=campaign.id,
            org_id=ORG_ID,
            changes=CampaignUpdate(name="Renamed", due_date=date.today() + timedelta(days=60)),
            user_id="user_456",
        )

        assert updated.name == "Renamed"
        assert updated.version == 2
        assert updated.updated_by_id == "user_456"

    def test_note_only_edit_keeps_version(self, db_session, lifecycle):
        campaign = create_campaign(db_session)

        updated = lifecycle.update(
            db_session, campaign_id=campaign.id, org_id=ORG_ID, changes=CampaignUpdate(status_note="FYI")
        )

        assert updated.version == 1

    def test_live_campaign_accepts_only_note_and_reminders(self, db_session, lifecycle, active_campaign):
        with pytest.raises(DisallowedFieldEditError) as exc_info:
            lifecycle.update(
                db_session,
                campaign_id=active_campaign.id,
                org_id=ORG_ID,
                changes=CampaignUpdate(name="Too late", status_note="ok"),
            )
        assert exc_info.value.fields == ["name"]

        updated = lifecycle.update(
            db_session,
            campaign_id=active_campaign.id,
            org_id=ORG_ID,
            changes=CampaignUpdate(
                status_note="Extended reminders",
                reminder_config=[ReminderStep(days_from_due=-3), ReminderStep(days_from_due=2)],
            ),
        )
        assert updated.status_note == "Extended reminders"
        assert updated.reminder_config[0]["days_from_due"] == -3
        assert updated.version == 1

    def test_finished_campaign_rejects_every_edit(self, db_session, lifecycle, active_campaign):
        lifecycle.complete(db_session, campaign_id=active_campaign.id, org_id=ORG_ID)

        with pytest.raises(DisallowedFieldEditError):
            lifecycle.update(
                db_session,
                campaign_id=active_campaign.id,
                org_id=ORG_ID,
                changes=CampaignUpdate(status_note="closed"),
            )

    def test_other_org_cannot_see_campaign(self, db_session, lifecycle):
        campaign = create_campaign(db_session)
        with pytest.raises(NotFoundError):
            lifecycle.get_campaign(db_session, campaign.id, "org_other")


class TestLaunch:
    def test_immediate_launch_assigns_everyone(self, db_session, active_campaign, event_sink):
        assert active_campaign.status == CampaignStatus.ACTIVE.value
        assert active_campaign.total_assignments == 4
        assert active_campaign.launched_by_id == "user_123"
        assert active_campaign.launched_at is not None

        assignments = crud_assignment.get_by_campaign(db_session, campaign_id=active_campaign.id)
        assert {a.employee_id for a in assignments} == {f"emp_{i:03d}" for i in range(4)}
        assert all(a.recipient_snapshot["email"].endswith("@example.com") for a in assignments)
        assert all(a.due_date == active_campaign.due_date for a in assignments)

    def test_launch_twice_is_rejected(self, db_session, lifecycle, active_campaign):
        with pytest.raises(InvalidTransitionError):
            lifecycle.launch(db_session, campaign_id=active_campaign.id, org_id=ORG_ID)

    def test_empty_audience_is_rejected(self, db_session, lifecycle):
        campaign = create_campaign(db_session)

        with pytest.raises(CampaignValidationError, match="no target employees"):
            lifecycle.launch(db_session, campaign_id=campaign.id, org_id=ORG_ID)

        db_session.refresh(campaign)
        assert campaign.status == CampaignStatus.DRAFT.value

    def test_snapshot_is_frozen_at_launch(self, db_session, active_campaign):
        employee = db_session.get(Employee, "emp_000")
        employee.email = "renamed@example.com"
        db_session.commit()

        assignment = [
            a for a in crud_assignment.get_by_campaign(db_session, campaign_id=active_campaign.id)
            if a.employee_id == "emp_000"
        ][0]
        assert assignment.recipient_snapshot["email"] == "emp0@example.com"

    def test_staggered_draft_launch_sends_first_wave_now(self, db_session, lifecycle, task_queue):
        create_employees(db_session, 10)
        campaign = create_campaign(
            db_session,
            strategy=RolloutStrategy.STAGGERED,
            rollout_config=RolloutConfig(values=[40, 60], wave_day_gap=2),
        )

        launched = lifecycle.launch(db_session, campaign_id=campaign.id, org_id=ORG_ID)

        assert launched.status == CampaignStatus.ACTIVE.value
        waves = crud_wave.get_by_campaign(db_session, campaign_id=campaign.id)
        assert [w.status for w in waves] == [WaveStatus.LAUNCHED.value, WaveStatus.PENDING.value]
        assert len(crud_assignment.get_by_campaign(db_session, campaign_id=campaign.id)) == 4
        assert task_queue.pending_keys() == [f"{campaign.id}:2"]

    def test_staggered_launch_without_config_is_rejected(self, db_session, lifecycle):
        create_employees(db_session, 2)
        campaign = create_campaign(db_session, strategy=RolloutStrategy.STAGGERED)

        with pytest.raises(CampaignValidationError):
            lifecycle.launch(db_session, campaign_id=campaign.id, org_id=ORG_ID)

    def test_launching_a_scheduled_immediate_campaign_early(self, db_session, lifecycle, scheduler, task_queue):
        create_employees(db_session, 3)
        campaign = create_campaign(db_session)
        scheduler.schedule_launch(
            db_session,
            campaign_id=campaign.id,
            org_id=ORG_ID,
            scheduled_at=datetime.now(timezone.utc) + timedelta(days=2),
        )

        launched = lifecycle.launch(db_session, campaign_id=campaign.id, org_id=ORG_ID)

        assert launched.status == CampaignStatus.ACTIVE.value
        assert task_queue.pending_keys() == []
        assert launched.total_assignments == 3


class TestTransitions:
    def test_pause_and_resume(self, db_session, lifecycle, active_campaign):
        paused = lifecycle.pause(db_session, campaign_id=active_campaign.id, org_id=ORG_ID)
        assert paused.status == CampaignStatus.PAUSED.value

        resumed = lifecycle.resume(db_session, campaign_id=active_campaign.id, org_id=ORG_ID)
        assert resumed.status == CampaignStatus.ACTIVE.value

    @pytest.mark.parametrize("action", ["pause", "resume", "complete"])
    def test_draft_cannot_move_except_cancel(self, db_session, lifecycle, action):
        campaign = create_campaign(db_session)

        with pytest.raises(InvalidTransitionError):
            getattr(lifecycle, action)(db_session, campaign_id=campaign.id, org_id=ORG_ID)

    def test_cancel_with_reason(self, db_session, lifecycle, active_campaign):
        cancelled = lifecycle.cancel(
            db_session, campaign_id=active_campaign.id, org_id=ORG_ID, reason="Policy withdrawn"
        )

        assert cancelled.status == CampaignStatus.CANCELLED.value
        assert cancelled.status_note == "Policy withdrawn"
        # Existing assignments are kept
        assert len(crud_assignment.get_by_campaign(db_session, campaign_id=active_campaign.id)) == 4

    def test_completed_campaign_cannot_be_cancelled(self, db_session, lifecycle, active_campaign):
        lifecycle.complete(db_session, campaign_id=active_campaign.id, org_id=ORG_ID)

        with pytest.raises(InvalidTransitionError):
            lifecycle.cancel(db_session, campaign_id=active_campaign.id, org_id=ORG_ID)

    def test_draft_can_be_cancelled(self, db_session, lifecycle):
        campaign = create_campaign(db_session)
        assert lifecycle.cancel(db_session, campaign_id=campaign.id, org_id=ORG_ID).status == "CANCELLED"


def test_statistics(db_session, lifecycle, active_campaign):
    assignment = crud_assignment.get_by_campaign(db_session, campaign_id=active_campaign.id)[0]
    crud_assignment.complete(db_session, assignment_id=assignment.id)

    stats = lifecycle.get_statistics(db_session, campaign_id=active_campaign.id, org_id=ORG_ID)

    assert stats.total == 4
    assert stats.completed == 1
    assert stats.overdue == 0
    assert stats.completion_percentage == 25
