# campaign_rollout/services/reminder_sequencer.py
"""
Reminder sequencer.

Each campaign carries an ordered reminder sequence, e.g.
``[-5, -1, +3 (cc manager), +7 (cc manager + HR)]`` in days relative to the
due date. The daily sweep looks at every open assignment of every ACTIVE
campaign, finds the step whose offset equals today's distance from the due
date and fires it if the assignment's ``reminder_count`` is still below the
step's 1-based position.

Comparing positions instead of keeping per-step flags makes repeated sweeps
on the same day harmless. A day on which the sweep did not run is not
backfilled: the step scheduled for that day never fires.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from campaign_rollout.core.exceptions import DisallowedFieldEditError, NotFoundError
from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.crud import campaign_assignment as crud_assignment
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_assignment import CampaignAssignment
from campaign_rollout.schemas.campaign import (
    CampaignStatus,
    DEFAULT_REMINDER_SEQUENCE,
    ReminderSequence,
    ReminderStep,
)
from campaign_rollout.services import event_sink as events
from campaign_rollout.utils.time import utcnow

logger = logging.getLogger(__name__)

SWEEP_BATCH_SIZE = 500
REMINDER_EDITABLE_STATUSES = [
    CampaignStatus.DRAFT.value,
    CampaignStatus.SCHEDULED.value,
    CampaignStatus.ACTIVE.value,
    CampaignStatus.PAUSED.value,
]


@dataclass
class DueReminder:
    assignment: CampaignAssignment
    step: int
    config: ReminderStep
    days_from_due: int


def days_from_due(today: date, due_date: date) -> int:
    """Negative before the due date, positive once overdue."""
    return (today - due_date).days


def match_step(sequence: List[ReminderStep], offset: int) -> Optional[tuple[int, ReminderStep]]:
    """1-based position and config of the step firing at ``offset``, if any."""
    for index, step in enumerate(sequence):
        if step.days_from_due == offset:
            return index + 1, step
    return None


def sequence_for(campaign: Campaign) -> List[ReminderStep]:
    if campaign.reminder_config is None:
        return list(DEFAULT_REMINDER_SEQUENCE)
    return [ReminderStep(**step) for step in campaign.reminder_config]


class ReminderSequencer:
    def __init__(self, event_sink: Optional[events.EventSink] = None, batch_size: int = SWEEP_BATCH_SIZE):
        self._event_sink = event_sink
        self.batch_size = batch_size

    @property
    def event_sink(self) -> events.EventSink:
        if self._event_sink is None:
            self._event_sink = events.get_event_sink()
        return self._event_sink

    def _get_campaign(self, db: Session, campaign_id: str, org_id: str) -> Campaign:
        campaign = crud_campaign.get_for_org(db, id=campaign_id, org_id=org_id)
        if not campaign:
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    # ==================== Sequence configuration ====================

    def get_sequence(self, db: Session, *, campaign_id: str, org_id: str) -> List[ReminderStep]:
        return sequence_for(self._get_campaign(db, campaign_id, org_id))

    def set_sequence(
        self,
        db: Session,
        *,
        campaign_id: str,
        org_id: str,
        steps: List[ReminderStep],
        user_id: Optional[str] = None,
    ) -> List[ReminderStep]:
        campaign = self._get_campaign(db, campaign_id, org_id)
        if campaign.status not in REMINDER_EDITABLE_STATUSES:
            raise DisallowedFieldEditError(["reminder_config"], campaign.status)

        validated = ReminderSequence(steps=steps).steps
        campaign.reminder_config = [step.model_dump() for step in validated]
        campaign.updated_by_id = user_id
        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        logger.info(f"Reminder sequence of campaign {campaign_id} set to {len(validated)} steps")
        return validated

    # ==================== Daily sweep ====================

    def find_due_reminders(
        self, db: Session, *, today: Optional[date] = None, org_id: Optional[str] = None
    ) -> List[DueReminder]:
        """Reminders that should fire today and have not fired yet."""
        today = today or utcnow().date()
        sequences: Dict[str, List[ReminderStep]] = {}
        due: List[DueReminder] = []

        offset = 0
        while True:
            batch = crud_assignment.get_open_for_active_campaigns(
                db, org_id=org_id, batch_size=self.batch_size, offset=offset
            )
            if not batch:
                break
            for assignment in batch:
                if assignment.campaign_id not in sequences:
                    sequences[assignment.campaign_id] = sequence_for(assignment.campaign)
                distance = days_from_due(today, assignment.due_date)
                matched = match_step(sequences[assignment.campaign_id], distance)
                if matched is None:
                    continue
                step, config = matched
                if assignment.reminder_count < step:
                    due.append(DueReminder(assignment, step, config, distance))
            offset += len(batch)
        return due

    def dispatch(self, db: Session, reminder: DueReminder) -> bool:
        """
        Fire one reminder. The conditional update runs first; only the caller
        that wins it emits the event.
        """
        assignment = reminder.assignment
        sent_at = utcnow()
        if not crud_assignment.record_reminder(
            db,
            assignment_id=assignment.id,
            step=reminder.step,
            cc_manager=reminder.config.cc_manager,
            sent_at=sent_at,
        ):
            return False

        snapshot = assignment.recipient_snapshot or {}
        self.event_sink.emit(
            events.CAMPAIGN_REMINDER_DUE,
            {
                "campaign_id": assignment.campaign_id,
                "organization_id": assignment.organization_id,
                "assignment_id": assignment.id,
                "employee_id": assignment.employee_id,
                "email": snapshot.get("email"),
                "manager": snapshot.get("manager"),
                "due_date": assignment.due_date.isoformat(),
                "step": reminder.step,
                "days_from_due": reminder.days_from_due,
                "cc_manager": reminder.config.cc_manager,
                "cc_hr": reminder.config.cc_hr,
                "template_id": reminder.config.template_id,
                "sent_at": sent_at.isoformat(),
            },
        )
        return True

    def run_sweep(
        self, db: Session, *, today: Optional[date] = None, org_id: Optional[str] = None
    ) -> dict:
        today = today or utcnow().date()
        due = self.find_due_reminders(db, today=today, org_id=org_id)
        dispatched = sum(1 for reminder in due if self.dispatch(db, reminder))
        stats = {
            "date": today.isoformat(),
            "due": len(due),
            "dispatched": dispatched,
            "skipped": len(due) - dispatched,
        }
        logger.info(
            f"Reminder sweep for {today}: {dispatched} dispatched, "
            f"{stats['skipped']} already sent"
        )
        return stats

    # ==================== Overdue tracking ====================

    def sync_overdue(self, db: Session, *, campaign_id: str, today: Optional[date] = None) -> int:
        """
        Move open assignments past their due date to OVERDUE, record a missed
        deadline for each, then recount the campaign's counters.
        """
        today = today or utcnow().date()
        flipped = crud_assignment.mark_overdue(db, campaign_id=campaign_id, today=today)
        crud_campaign.recount_assignments(db, campaign_id=campaign_id)
        if flipped:
            logger.info(f"{len(flipped)} assignments of campaign {campaign_id} are now overdue")
        return len(flipped)

    def sync_all_overdue(self, db: Session, *, today: Optional[date] = None) -> int:
        total = 0
        for campaign_id in crud_campaign.get_active_ids(db):
            total += self.sync_overdue(db, campaign_id=campaign_id, today=today)
        return total


reminder_sequencer = ReminderSequencer()
