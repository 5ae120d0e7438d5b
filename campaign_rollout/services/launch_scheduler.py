# campaign_rollout/services/launch_scheduler.py
"""
Deferred launch scheduler.

Turns a "launch at T" request into a persisted wave plan plus one deferred
task per wave (or a single task for IMMEDIATE rollouts). The caller returns
as soon as the tasks are enqueued; the launch itself runs in a worker.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from campaign_rollout.core.exceptions import (
    CampaignValidationError,
    InvalidTransitionError,
    NotFoundError,
    TransientExecutionError,
)
from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.crud import campaign_wave as crud_wave
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.models.campaign_wave import CampaignWave
from campaign_rollout.schemas.campaign import (
    CampaignStatus,
    RolloutConfig,
    RolloutStrategy,
    ScheduleDetails,
    WaveStatus,
    WaveSummary,
)
from campaign_rollout.services import event_sink as events
from campaign_rollout.services.audience import AudienceEvaluator, audience_evaluator
from campaign_rollout.services.blackout_calendar import BlackoutCalendar, blackout_calendar
from campaign_rollout.services.task_queue import (
    LAUNCH_CAMPAIGN,
    LAUNCH_WAVE,
    TaskQueue,
    campaign_task_key,
    get_task_queue,
    wave_task_key,
)
from campaign_rollout.services.wave_planner import WavePlanner, wave_planner
from campaign_rollout.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class LaunchScheduler:
    def __init__(
        self,
        task_queue: Optional[TaskQueue] = None,
        calendar: Optional[BlackoutCalendar] = None,
        planner: Optional[WavePlanner] = None,
        audience: Optional[AudienceEvaluator] = None,
        event_sink: Optional[events.EventSink] = None,
    ):
        self._task_queue = task_queue
        self.calendar = calendar or blackout_calendar
        self.planner = planner or wave_planner
        self.audience = audience or audience_evaluator
        self._event_sink = event_sink

    @property
    def task_queue(self) -> TaskQueue:
        if self._task_queue is None:
            self._task_queue = get_task_queue()
        return self._task_queue

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

    def _resolve_strategy(
        self,
        campaign: Campaign,
        rollout_config: Optional[RolloutConfig],
        strategy: Optional[RolloutStrategy],
    ) -> tuple[RolloutStrategy, Optional[RolloutConfig]]:
        if rollout_config is None and campaign.rollout_config:
            rollout_config = RolloutConfig(**campaign.rollout_config)
        if strategy is None:
            strategy = RolloutStrategy.STAGGERED if rollout_config else RolloutStrategy.IMMEDIATE
        if strategy != RolloutStrategy.IMMEDIATE and rollout_config is None:
            raise CampaignValidationError(
                f"{strategy.value} rollout requires a rollout configuration",
                details={"campaign_id": campaign.id},
            )
        if strategy == RolloutStrategy.IMMEDIATE:
            rollout_config = None
        return strategy, rollout_config

    def schedule_launch(
        self,
        db: Session,
        *,
        campaign_id: str,
        org_id: str,
        scheduled_at: datetime,
        rollout_config: Optional[RolloutConfig] = None,
        strategy: Optional[RolloutStrategy] = None,
        user_id: Optional[str] = None,
    ) -> ScheduleDetails:
        """
        Schedule a DRAFT campaign for a future launch.

        Every validation runs before anything is written, so a rejected
        request leaves no campaign change, wave or task behind.
        """
        campaign = self._get_campaign(db, campaign_id, org_id)
        if campaign.status != CampaignStatus.DRAFT.value:
            raise InvalidTransitionError(campaign_id, campaign.status, "schedule")

        scheduled_at = ensure_utc(scheduled_at)
        now = utcnow()
        if scheduled_at - now <= timedelta(0):
            raise CampaignValidationError(
                "Scheduled time must be in the future",
                details={"scheduled_at": scheduled_at.isoformat()},
            )

        if self.calendar.is_blackout(db, scheduled_at.date(), org_id):
            next_available = self.calendar.next_available(db, scheduled_at.date(), org_id)
            raise CampaignValidationError(
                f"Scheduled date {scheduled_at.date().isoformat()} falls within a blackout period. "
                f"Next available date: {next_available.isoformat()}",
                details={"next_available": next_available.isoformat()},
            )

        strategy, rollout_config = self._resolve_strategy(campaign, rollout_config, strategy)
        start_at = scheduled_at
        if rollout_config is not None and rollout_config.start_date is not None:
            start_at = ensure_utc(rollout_config.start_date)
            if start_at <= now:
                raise CampaignValidationError(
                    "Rollout start date must be in the future",
                    details={"start_date": start_at.isoformat()},
                )

        # Count rollouts are cut now; percentage rollouts sample at fire time
        recipient_ids = None
        if rollout_config is not None and rollout_config.type == "count":
            criteria = self.audience.criteria_for_campaign(campaign)
            recipient_ids = self.audience.resolve(db, criteria, org_id)

        moved = crud_campaign.transition_status(
            db,
            campaign_id=campaign_id,
            from_statuses=[CampaignStatus.DRAFT.value],
            to_status=CampaignStatus.SCHEDULED.value,
            launch_at=scheduled_at,
            rollout_strategy=strategy.value,
            rollout_config=rollout_config.model_dump(mode="json") if rollout_config else None,
            updated_by_id=user_id,
            commit=False,
        )
        if not moved:
            db.rollback()
            db.refresh(campaign)
            raise InvalidTransitionError(campaign_id, campaign.status, "schedule")
        db.refresh(campaign)

        # The status change commits together with the wave plan
        waves: List[CampaignWave] = []
        try:
            if rollout_config is not None:
                waves = self.planner.plan_waves(
                    db,
                    campaign=campaign,
                    config=rollout_config,
                    start_at=start_at,
                    recipient_ids=recipient_ids,
                )
            else:
                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to persist the schedule of campaign {campaign_id}: {e}")
            raise TransientExecutionError(
                f"Could not schedule campaign {campaign_id}", details={"campaign_id": campaign_id}
            ) from e
        except Exception:
            db.rollback()
            raise

        if rollout_config is not None:
            self.enqueue_waves(waves, campaign_id, now=now)
        else:
            self.task_queue.enqueue(
                campaign_task_key(campaign_id),
                {
                    "action": LAUNCH_CAMPAIGN,
                    "campaign_id": campaign_id,
                    "launched_by_id": user_id,
                },
                scheduled_at - now,
            )

        details = ScheduleDetails(
            campaign_id=campaign_id,
            scheduled_at=scheduled_at,
            rollout_strategy=strategy,
            wave_count=len(waves) or 1,
            waves=[
                WaveSummary(
                    wave_number=w.wave_number,
                    scheduled_at=ensure_utc(w.scheduled_at),
                    recipient_count=len(w.recipient_ids or []),
                    audience_percentage=w.audience_percentage,
                )
                for w in waves
            ],
        )
        logger.info(
            f"Campaign {campaign_id} scheduled for {scheduled_at.isoformat()} "
            f"with {strategy.value} rollout ({details.wave_count} waves)"
        )
        self.event_sink.emit(
            events.CAMPAIGN_SCHEDULED,
            {
                "campaign_id": campaign_id,
                "organization_id": org_id,
                "scheduled_at": scheduled_at.isoformat(),
                "rollout_strategy": strategy.value,
                "wave_count": details.wave_count,
            },
        )
        return details

    def enqueue_waves(
        self, waves: List[CampaignWave], campaign_id: str, now: Optional[datetime] = None
    ) -> int:
        """Enqueue one task per PENDING wave; overdue fire times run right away."""
        now = now or utcnow()
        enqueued = 0
        for wave in waves:
            if wave.status != WaveStatus.PENDING.value:
                continue
            delay = max(ensure_utc(wave.scheduled_at) - now, timedelta(0))
            if self.task_queue.enqueue(
                wave_task_key(campaign_id, wave.wave_number),
                {
                    "action": LAUNCH_WAVE,
                    "campaign_id": campaign_id,
                    "wave_number": wave.wave_number,
                },
                delay,
            ):
                enqueued += 1
        return enqueued

    def requeue_due_waves(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Re-enqueue PENDING waves of live campaigns whose fire time has passed.
        Covers a crash between persisting a plan and enqueueing it; keys
        still registered are suppressed by the queue.
        """
        now = now or utcnow()
        by_campaign: dict[str, List[CampaignWave]] = {}
        for wave in crud_wave.get_due_pending(db, now=now):
            by_campaign.setdefault(wave.campaign_id, []).append(wave)
        requeued = 0
        for campaign_id, waves in by_campaign.items():
            requeued += self.enqueue_waves(waves, campaign_id, now=now)
        if requeued:
            logger.warning(f"Re-enqueued {requeued} overdue waves")
        return requeued

    def requeue_due_launches(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Re-enqueue the launch task of SCHEDULED IMMEDIATE campaigns whose
        launch time has passed, for when the enqueue after scheduling failed
        or the broker lost the task.
        """
        now = now or utcnow()
        requeued = 0
        for campaign in crud_campaign.get_due_scheduled_launches(db, now=now):
            if self.task_queue.enqueue(
                campaign_task_key(campaign.id),
                {
                    "action": LAUNCH_CAMPAIGN,
                    "campaign_id": campaign.id,
                    "launched_by_id": campaign.updated_by_id,
                },
                timedelta(0),
            ):
                requeued += 1
        if requeued:
            logger.warning(f"Re-enqueued {requeued} overdue campaign launches")
        return requeued

    def cancel_pending_work(self, db: Session, campaign: Campaign) -> int:
        """
        Cancel every deferred task of ``campaign`` and mark its PENDING waves
        CANCELLED. Tasks that already fired are unaffected.
        """
        waves = crud_wave.get_by_campaign(db, campaign_id=campaign.id)
        self.task_queue.cancel(campaign_task_key(campaign.id))
        for wave in waves:
            self.task_queue.cancel(wave_task_key(campaign.id, wave.wave_number))
        cancelled = crud_wave.cancel_pending(db, campaign_id=campaign.id)
        logger.info(f"Cancelled {cancelled} pending waves of campaign {campaign.id}")
        return cancelled

    def cancel_scheduled_launch(
        self,
        db: Session,
        *,
        campaign_id: str,
        org_id: str,
        reason: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Campaign:
        """Undo a schedule: tasks removed, pending waves cancelled, campaign back to DRAFT."""
        campaign = self._get_campaign(db, campaign_id, org_id)
        if campaign.status != CampaignStatus.SCHEDULED.value:
            raise CampaignValidationError(
                "Only scheduled campaigns can have their launch cancelled",
                details={"campaign_id": campaign_id, "status": campaign.status},
            )

        self.cancel_pending_work(db, campaign)
        values = {"launch_at": None, "updated_by_id": user_id}
        if reason:
            values["status_note"] = reason
        moved = crud_campaign.transition_status(
            db,
            campaign_id=campaign_id,
            from_statuses=[CampaignStatus.SCHEDULED.value],
            to_status=CampaignStatus.DRAFT.value,
            **values,
        )
        db.refresh(campaign)
        if not moved:
            # A wave fired first; the campaign is live now
            logger.warning(
                f"Campaign {campaign_id} left SCHEDULED before its schedule was cancelled "
                f"(now {campaign.status})"
            )
            raise InvalidTransitionError(campaign_id, campaign.status, "cancel the schedule of")

        logger.info(f"Scheduled launch of campaign {campaign_id} cancelled")
        self.event_sink.emit(
            events.CAMPAIGN_SCHEDULE_CANCELLED,
            {"campaign_id": campaign_id, "organization_id": org_id, "reason": reason},
        )
        return campaign

    def get_waves(self, db: Session, *, campaign_id: str, org_id: str) -> List[CampaignWave]:
        self._get_campaign(db, campaign_id, org_id)
        return crud_wave.get_by_campaign(db, campaign_id=campaign_id)


_default_scheduler: Optional[LaunchScheduler] = None


def get_launch_scheduler() -> LaunchScheduler:
    global _default_scheduler
    if _default_scheduler is None:
        _default_scheduler = LaunchScheduler()
    return _default_scheduler
