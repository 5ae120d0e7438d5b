from datetime import date, timedelta

import pytest

from campaign_rollout.core.exceptions import DisallowedFieldEditError
from campaign_rollout.crud import campaign_assignment as crud_assignment
from campaign_rollout.crud import compliance_profile as crud_profile
from campaign_rollout.schemas.campaign import AssignmentStatus, ReminderStep
from campaign_rollout.services import event_sink as events
from campaign_rollout.services.reminder_sequencer import days_from_due, match_step
from tests.utils.campaign import ORG_ID, create_campaign, create_employees

DUE = date.today() + timedelta(days=20)


@pytest.fixture
def launched(db_session, executor):
    """An ACTIVE campaign with one assignment due on DUE and the default sequence."""
    create_employees(db_session, 1)
    campaign = create_campaign(db_session, due_date=DUE)
    executor.launch_campaign(db_session, campaign.id)
    db_session.refresh(campaign)
    return campaign


def _reminders(event_sink):
    return [c.args[1] for c in event_sink.emit.call_args_list if c.args[0] == events.CAMPAIGN_REMINDER_DUE]


def _assignment(db_session, campaign):
    return crud_assignment.get_by_campaign(db_session, campaign_id=campaign.id)[0]


def test_days_from_due_sign():
    assert days_from_due(date(2025, 1, 5), date(2025, 1, 10)) == -5
    assert days_from_due(date(2025, 1, 13), date(2025, 1, 10)) == 3


def test_match_step_is_one_based():
    sequence = [ReminderStep(days_from_due=-5), ReminderStep(days_from_due=3, cc_manager=True)]

    step, config = match_step(sequence, 3)

    assert step == 2
    assert config.cc_manager is True
    assert match_step(sequence, 0) is None


def test_default_sequence_fires_each_step_once(db_session, sequencer, event_sink, launched):
    schedule = {
        DUE - timedelta(days=5): 1,
        DUE - timedelta(days=1): 2,
        DUE + timedelta(days=3): 3,
        DUE + timedelta(days=7): 4,
    }
    for day, expected_count in schedule.items():
        first = sequencer.run_sweep(db_session, today=day)
        again = sequencer.run_sweep(db_session, today=day)

        assert first["dispatched"] == 1
        assert again["dispatched"] == 0
        db_session.expire_all()
        assert _assignment(db_session, launched).reminder_count == expected_count

    reminders = _reminders(event_sink)
    assert [r["step"] for r in reminders] == [1, 2, 3, 4]
    assert [r["days_from_due"] for r in reminders] == [-5, -1, 3, 7]
    assert [r["cc_manager"] for r in reminders] == [False, False, True, True]
    assert [r["cc_hr"] for r in reminders] == [False, False, False, True]
    assert reminders[0]["email"] == "emp0@example.com"


def test_days_between_steps_fire_nothing(db_session, sequencer, launched):
    for offset in (-10, -4, 0, 1, 5, 30):
        stats = sequencer.run_sweep(db_session, today=DUE + timedelta(days=offset))
        assert stats["dispatched"] == 0


def test_missed_day_is_not_backfilled(db_session, sequencer, event_sink, launched):
    # The -5 sweep never ran
    sequencer.run_sweep(db_session, today=DUE - timedelta(days=1))

    db_session.expire_all()
    assert _assignment(db_session, launched).reminder_count == 2
    assert [r["step"] for r in _reminders(event_sink)] == [2]


def test_concurrent_dispatch_sends_once(db_session, sequencer, event_sink, launched):
    day = DUE - timedelta(days=5)
    first_view = sequencer.find_due_reminders(db_session, today=day)
    second_view = sequencer.find_due_reminders(db_session, today=day)

    assert sequencer.dispatch(db_session, first_view[0]) is True
    assert sequencer.dispatch(db_session, second_view[0]) is False
    assert len(_reminders(event_sink)) == 1


def test_completed_assignments_get_no_reminders(db_session, sequencer, launched):
    crud_assignment.complete(db_session, assignment_id=_assignment(db_session, launched).id)

    stats = sequencer.run_sweep(db_session, today=DUE - timedelta(days=5))

    assert stats["due"] == 0


def test_custom_sequence(db_session, sequencer, launched):
    sequencer.set_sequence(
        db_session,
        campaign_id=launched.id,
        org_id=ORG_ID,
        steps=[ReminderStep(days_from_due=-2), ReminderStep(days_from_due=1, cc_hr=True)],
    )

    assert sequencer.run_sweep(db_session, today=DUE - timedelta(days=5))["dispatched"] == 0
    assert sequencer.run_sweep(db_session, today=DUE - timedelta(days=2))["dispatched"] == 1
    assert [s.days_from_due for s in sequencer.get_sequence(db_session, campaign_id=launched.id, org_id=ORG_ID)] == [-2, 1]


def test_sequence_cannot_change_once_finished(db_session, sequencer, lifecycle, launched):
    lifecycle.complete(db_session, campaign_id=launched.id, org_id=ORG_ID)

    with pytest.raises(DisallowedFieldEditError):
        sequencer.set_sequence(
            db_session, campaign_id=launched.id, org_id=ORG_ID, steps=[ReminderStep(days_from_due=-1)]
        )


def test_paused_campaigns_are_not_swept(db_session, sequencer, lifecycle, launched):
    lifecycle.pause(db_session, campaign_id=launched.id, org_id=ORG_ID)

    assert sequencer.run_sweep(db_session, today=DUE - timedelta(days=5))["due"] == 0


class TestOverdue:
    def test_sync_marks_overdue_once_and_counts_the_miss(self, db_session, sequencer, launched):
        assert sequencer.sync_overdue(db_session, campaign_id=launched.id, today=DUE) == 0
        assert sequencer.sync_overdue(db_session, campaign_id=launched.id, today=DUE + timedelta(days=1)) == 1
        assert sequencer.sync_overdue(db_session, campaign_id=launched.id, today=DUE + timedelta(days=2)) == 0

        assignment = _assignment(db_session, launched)
        assert assignment.status == AssignmentStatus.OVERDUE.value
        profile = crud_profile.get_by_employee(db_session, org_id=ORG_ID, employee_id="emp_000")
        assert profile.campaigns_missed_deadline == 1
        db_session.refresh(launched)
        assert launched.overdue_assignments == 1

    def test_overdue_assignments_keep_getting_reminders(self, db_session, sequencer, launched):
        sequencer.sync_overdue(db_session, campaign_id=launched.id, today=DUE + timedelta(days=1))

        assert sequencer.run_sweep(db_session, today=DUE + timedelta(days=3))["dispatched"] == 1

    def test_completing_an_overdue_assignment_does_not_count_a_second_miss(self, db_session, sequencer, launched):
        sequencer.sync_overdue(db_session, campaign_id=launched.id, today=DUE + timedelta(days=1))

        completed = crud_assignment.complete(db_session, assignment_id=_assignment(db_session, launched).id)

        assert completed.status == AssignmentStatus.COMPLETED.value
        profile = crud_profile.get_by_employee(db_session, org_id=ORG_ID, employee_id="emp_000")
        assert profile.campaigns_missed_deadline == 1
        assert profile.campaigns_completed == 1
        db_session.refresh(launched)
        assert launched.overdue_assignments == 0
        assert launched.completed_assignments == 1

    def test_sync_all_covers_active_campaigns(self, db_session, sequencer, launched):
        assert sequencer.sync_all_overdue(db_session, today=DUE + timedelta(days=1)) == 1

    def test_sync_all_skips_finished_campaigns(self, db_session, sequencer, lifecycle, launched):
        lifecycle.complete(db_session, campaign_id=launched.id, org_id=ORG_ID)

        assert sequencer.sync_all_overdue(db_session, today=DUE + timedelta(days=1)) == 0
