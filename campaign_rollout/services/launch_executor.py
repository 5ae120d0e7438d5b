# campaign_rollout/services/launch_executor.py
"""
Launch executor.

Creates assignments (with point-in-time recipient snapshots) for a whole
IMMEDIATE campaign or for one wave of a staggered campaign.

One launch is one transaction: the status claim, the assignment rows, the
compliance "assigned" counters and the campaign total either all commit or
all roll back. For waves the PENDING -> LAUNCHED claim doubles as the guard
against a retried or duplicated task launching the same wave twice.
"""

import logging
import random
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from campaign_rollout.core.exceptions import (
    CampaignValidationError,
    NotFoundError,
    TransientExecutionError,
)
from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.crud import campaign_assignment as crud_assignment
from campaign_rollout.crud import campaign_wave as crud_wave
from campaign_rollout.crud import compliance_profile as crud_profile
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_wave import CampaignWave
from campaign_rollout.schemas.campaign import CampaignStatus, WaveStatus
from campaign_rollout.services import event_sink as events
from campaign_rollout.services.audience import AudienceEvaluator, audience_evaluator
from campaign_rollout.services.wave_planner import round_half_up
from campaign_rollout.utils.time import utcnow

logger = logging.getLogger(__name__)

LAUNCHABLE_STATUSES = [CampaignStatus.DRAFT.value, CampaignStatus.SCHEDULED.value]
WAVE_LAUNCHABLE_STATUSES = [CampaignStatus.SCHEDULED.value, CampaignStatus.ACTIVE.value]


class LaunchExecutor:
    def __init__(
        self,
        audience: Optional[AudienceEvaluator] = None,
        event_sink: Optional[events.EventSink] = None,
        rng: Optional[random.Random] = None,
    ):
        self.audience = audience or audience_evaluator
        self._event_sink = event_sink
        self.rng = rng or random.Random()

    @property
    def event_sink(self) -> events.EventSink:
        if self._event_sink is None:
            self._event_sink = events.get_event_sink()
        return self._event_sink

    def _stage_assignments(
        self,
        db: Session,
        campaign: Campaign,
        snapshots: dict[str, dict],
        wave_id: Optional[str] = None,
    ) -> int:
        if not snapshots:
            return 0
        crud_assignment.add_many(db, campaign=campaign, snapshots=snapshots, wave_id=wave_id)
        for employee_id in snapshots:
            crud_profile.record_assigned(
                db, org_id=campaign.organization_id, employee_id=employee_id
            )
        crud_campaign.increment_total_assignments(
            db, campaign_id=campaign.id, count=len(snapshots)
        )
        return len(snapshots)

    def launch_campaign(
        self,
        db: Session,
        campaign_id: str,
        launched_by_id: Optional[str] = None,
    ) -> int:
        """
        Assign the whole audience at once and move the campaign to ACTIVE.

        Returns the number of assignments created; 0 when the campaign was
        already launched by someone else.
        """
        campaign = crud_campaign.get(db, id=campaign_id)
        if not campaign:
            raise NotFoundError("Campaign", campaign_id)
        if campaign.status not in LAUNCHABLE_STATUSES:
            logger.warning(
                f"Campaign {campaign_id} is {campaign.status}; skipping launch"
            )
            return 0

        criteria = self.audience.criteria_for_campaign(campaign)
        recipient_ids = self.audience.resolve(db, criteria, campaign.organization_id)
        if not recipient_ids:
            raise CampaignValidationError(
                "Campaign audience is empty",
                details={"campaign_id": campaign_id},
            )
        snapshots = self.audience.snapshot_recipients(
            db, recipient_ids, campaign.organization_id
        )

        now = utcnow()
        try:
            claimed = crud_campaign.transition_status(
                db,
                campaign_id=campaign_id,
                from_statuses=LAUNCHABLE_STATUSES,
                to_status=CampaignStatus.ACTIVE.value,
                commit=False,
                launched_at=now,
                launched_by_id=launched_by_id,
            )
            if not claimed:
                db.rollback()
                logger.info(f"Campaign {campaign_id} was launched concurrently; nothing to do")
                return 0
            count = self._stage_assignments(db, campaign, snapshots)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientExecutionError(
                f"Store failure while launching campaign {campaign_id}: {e}",
                details={"campaign_id": campaign_id},
            ) from e

        logger.info(f"Campaign {campaign_id} launched with {count} assignments")
        self.event_sink.emit(
            events.CAMPAIGN_LAUNCHED,
            {
                "campaign_id": campaign_id,
                "organization_id": campaign.organization_id,
                "rollout_strategy": campaign.rollout_strategy,
                "assignment_count": count,
                "launched_at": now.isoformat(),
            },
        )
        return count

    def _wave_recipients(self, db: Session, campaign: Campaign, wave: CampaignWave) -> list[str]:
        """
        Explicit recipients if the wave has them, otherwise a fresh sample of
        the audience sized by the wave's percentage. Anyone already assigned
        in this campaign is excluded either way.
        """
        already_assigned = crud_assignment.get_assigned_employee_ids(db, campaign_id=campaign.id)
        if wave.recipient_ids:
            return [i for i in wave.recipient_ids if i not in already_assigned]
        if wave.audience_percentage is None:
            return []

        criteria = self.audience.criteria_for_campaign(campaign)
        full_audience = self.audience.resolve(db, criteria, campaign.organization_id)
        available = [i for i in full_audience if i not in already_assigned]

        last_wave = max(w.wave_number for w in crud_wave.get_by_campaign(db, campaign_id=campaign.id))
        if wave.wave_number == last_wave:
            # The last wave takes whatever earlier waves left over
            return available

        size = round_half_up(wave.audience_percentage / 100 * len(full_audience))
        return self.rng.sample(available, min(size, len(available)))

    def launch_wave(self, db: Session, campaign_id: str, wave_number: int) -> int:
        """
        Launch one wave. Returns the number of assignments created; 0 when the
        wave was already launched, was cancelled, or the campaign is not live.
        """
        wave = crud_wave.get_by_number(db, campaign_id=campaign_id, wave_number=wave_number)
        if not wave:
            raise NotFoundError("Wave", f"{campaign_id}:{wave_number}")
        if wave.status != WaveStatus.PENDING.value:
            logger.warning(
                f"Wave {wave_number} of campaign {campaign_id} is {wave.status}; skipping"
            )
            return 0

        campaign = crud_campaign.get(db, id=campaign_id)
        if not campaign:
            raise NotFoundError("Campaign", campaign_id)
        if campaign.status not in WAVE_LAUNCHABLE_STATUSES:
            # PAUSED campaigns keep the wave PENDING; resume re-enqueues it
            logger.warning(
                f"Campaign {campaign_id} is {campaign.status}; "
                f"leaving wave {wave_number} pending"
            )
            return 0

        recipient_ids = self._wave_recipients(db, campaign, wave)
        snapshots = self.audience.snapshot_recipients(db, recipient_ids, campaign.organization_id)
        first_launch = campaign.status == CampaignStatus.SCHEDULED.value

        now = utcnow()
        try:
            if not crud_wave.claim(db, wave_id=wave.id, launched_at=now):
                db.rollback()
                logger.info(f"Wave {wave_number} of campaign {campaign_id} already claimed")
                return 0
            count = self._stage_assignments(db, campaign, snapshots, wave_id=wave.id)
            activated = crud_campaign.transition_status(
                db,
                campaign_id=campaign_id,
                from_statuses=[CampaignStatus.SCHEDULED.value],
                to_status=CampaignStatus.ACTIVE.value,
                commit=False,
            )
            crud_campaign.mark_launched(db, campaign_id=campaign_id, launched_at=now)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientExecutionError(
                f"Store failure while launching wave {wave_number} of campaign {campaign_id}: {e}",
                details={"campaign_id": campaign_id, "wave_number": wave_number},
            ) from e

        if not snapshots:
            logger.warning(f"Wave {wave_number} of campaign {campaign_id} had no recipients")
        logger.info(f"Wave {wave_number} of campaign {campaign_id} launched with {count} assignments")

        if first_launch and activated:
            self.event_sink.emit(
                events.CAMPAIGN_LAUNCHED,
                {
                    "campaign_id": campaign_id,
                    "organization_id": campaign.organization_id,
                    "rollout_strategy": campaign.rollout_strategy,
                    "launched_at": now.isoformat(),
                },
            )
        self.event_sink.emit(
            events.CAMPAIGN_WAVE_LAUNCHED,
            {
                "campaign_id": campaign_id,
                "organization_id": campaign.organization_id,
                "wave_number": wave_number,
                "assignment_count": count,
                "launched_at": now.isoformat(),
            },
        )
        return count


launch_executor = LaunchExecutor()
