# campaign_rollout/services/lifecycle.py
"""
Campaign lifecycle controller.

    DRAFT -> SCHEDULED -> ACTIVE <-> PAUSED
                            |
                            v
                        COMPLETED

Any status before COMPLETED may move to CANCELLED. Every transition is a
conditional update on the current status, so two callers racing on the same
campaign cannot both succeed.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from campaign_rollout.core.exceptions import (
    CampaignValidationError,
    DisallowedFieldEditError,
    InvalidTransitionError,
    NotFoundError,
)
from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.crud import campaign_wave as crud_wave
from campaign_rollout.models.campaign import Campaign
from campaign_rollout.schemas.campaign import (
    CampaignStatistics,
    CampaignStatus,
    CampaignUpdate,
    RolloutConfig,
    RolloutStrategy,
    WaveStatus,
)
from campaign_rollout.services.audience import AudienceEvaluator, audience_evaluator
from campaign_rollout.services.launch_executor import LaunchExecutor, launch_executor
from campaign_rollout.services.launch_scheduler import LaunchScheduler, get_launch_scheduler
from campaign_rollout.services.reminder_sequencer import ReminderSequencer, reminder_sequencer
from campaign_rollout.services.task_queue import campaign_task_key, wave_task_key
from campaign_rollout.utils.time import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Editing any of these is a content change and bumps the version
CONTENT_FIELDS = {
    "name",
    "description",
    "due_date",
    "audience_mode",
    "segment_id",
    "manual_ids",
    "targeting_criteria",
    "language",
}
LIVE_EDITABLE_FIELDS = {"status_note", "reminder_config"}

FULLY_EDITABLE_STATUSES = [CampaignStatus.DRAFT.value, CampaignStatus.SCHEDULED.value]
LIVE_STATUSES = [CampaignStatus.ACTIVE.value, CampaignStatus.PAUSED.value]
CANCELLABLE_STATUSES = FULLY_EDITABLE_STATUSES + LIVE_STATUSES


class CampaignLifecycle:
    def __init__(
        self,
        scheduler: Optional[LaunchScheduler] = None,
        executor: Optional[LaunchExecutor] = None,
        sequencer: Optional[ReminderSequencer] = None,
        audience: Optional[AudienceEvaluator] = None,
    ):
        self._scheduler = scheduler
        self.executor = executor or launch_executor
        self.sequencer = sequencer or reminder_sequencer
        self.audience = audience or audience_evaluator

    @property
    def scheduler(self) -> LaunchScheduler:
        if self._scheduler is None:
            self._scheduler = get_launch_scheduler()
        return self._scheduler

    def get_campaign(self, db: Session, campaign_id: str, org_id: str) -> Campaign:
        campaign = crud_campaign.get_for_org(db, id=campaign_id, org_id=org_id)
        if not campaign:
            raise NotFoundError("Campaign", campaign_id)
        return campaign

    def _transition(
        self,
        db: Session,
        campaign: Campaign,
        from_statuses: list[str],
        to_status: str,
        action: str,
        **values,
    ) -> Campaign:
        if campaign.status not in from_statuses:
            raise InvalidTransitionError(campaign.id, campaign.status, action)
        moved = crud_campaign.transition_status(
            db,
            campaign_id=campaign.id,
            from_statuses=from_statuses,
            to_status=to_status,
            **values,
        )
        db.refresh(campaign)
        if not moved:
            raise InvalidTransitionError(campaign.id, campaign.status, action)
        logger.info(f"Campaign {campaign.id} -> {to_status} ({action})")
        return campaign

    # ==================== Edits ====================

    def update(
        self,
        db: Session,
        *,
        campaign_id: str,
        org_id: str,
        changes: CampaignUpdate,
        user_id: Optional[str] = None,
    ) -> Campaign:
        campaign = self.get_campaign(db, campaign_id, org_id)
        update_data = changes.model_dump(exclude_unset=True)
        fields = sorted(update_data)

        if campaign.status in FULLY_EDITABLE_STATUSES:
            pass
        elif campaign.status in LIVE_STATUSES:
            disallowed = [f for f in fields if f not in LIVE_EDITABLE_FIELDS]
            if disallowed:
                raise DisallowedFieldEditError(disallowed, campaign.status)
        else:
            raise DisallowedFieldEditError(fields, campaign.status)

        if update_data.get("reminder_config") is not None:
            update_data["reminder_config"] = [
                step.model_dump() for step in changes.reminder_config
            ]
        for field, value in update_data.items():
            setattr(campaign, field, value)
        if CONTENT_FIELDS & set(update_data):
            # Invalidates translations derived from this version
            campaign.version = (campaign.version or 1) + 1
        campaign.updated_by_id = user_id

        db.add(campaign)
        db.commit()
        db.refresh(campaign)
        return campaign

    # ==================== Launch ====================

    def launch(
        self,
        db: Session,
        *,
        campaign_id: str,
        org_id: str,
        user_id: Optional[str] = None,
    ) -> Campaign:
        """
        Launch now. IMMEDIATE campaigns are assigned synchronously; staggered
        campaigns launch every wave that is already due and leave the rest to
        the deferred scheduler.
        """
        campaign = self.get_campaign(db, campaign_id, org_id)
        if campaign.status not in FULLY_EDITABLE_STATUSES:
            raise InvalidTransitionError(campaign_id, campaign.status, "launch")

        criteria = self.audience.criteria_for_campaign(campaign)
        if not self.audience.resolve(db, criteria, org_id):
            raise CampaignValidationError(
                "Campaign has no target employees",
                details={"campaign_id": campaign_id},
            )

        if campaign.rollout_strategy == RolloutStrategy.IMMEDIATE.value:
            if campaign.status == CampaignStatus.SCHEDULED.value:
                self.scheduler.task_queue.cancel(campaign_task_key(campaign_id))
            self.executor.launch_campaign(db, campaign_id, launched_by_id=user_id)
        else:
            self._launch_staggered(db, campaign, user_id)

        db.refresh(campaign)
        return campaign

    def _launch_staggered(self, db: Session, campaign: Campaign, user_id: Optional[str]) -> None:
        if not campaign.rollout_config:
            raise CampaignValidationError(
                f"{campaign.rollout_strategy} rollout requires a rollout configuration",
                details={"campaign_id": campaign.id},
            )
        now = utcnow()

        if campaign.status == CampaignStatus.DRAFT.value:
            config = RolloutConfig(**campaign.rollout_config)
            recipient_ids = None
            if config.type == "count":
                criteria = self.audience.criteria_for_campaign(campaign)
                recipient_ids = self.audience.resolve(db, criteria, campaign.organization_id)
            self._transition(
                db,
                campaign,
                [CampaignStatus.DRAFT.value],
                CampaignStatus.SCHEDULED.value,
                "launch",
                launch_at=now,
                updated_by_id=user_id,
                commit=False,
            )
            # Committed by the plan; a failed plan leaves the campaign in DRAFT
            try:
                self.scheduler.planner.plan_waves(
                    db,
                    campaign=campaign,
                    config=config.model_copy(update={"start_date": None}),
                    start_at=now,
                    recipient_ids=recipient_ids,
                )
            except Exception:
                db.rollback()
                raise

        waves = crud_wave.get_by_campaign(db, campaign_id=campaign.id)
        due_now = [
            w for w in waves
            if w.status == WaveStatus.PENDING.value and ensure_utc(w.scheduled_at) <= now
        ]
        if not due_now:
            # Launching means the first wave goes out now, blackouts or not
            due_now = [w for w in waves if w.status == WaveStatus.PENDING.value][:1]

        for wave in due_now:
            self.scheduler.task_queue.cancel(wave_task_key(campaign.id, wave.wave_number))
            self.executor.launch_wave(db, campaign.id, wave.wave_number)

        remaining = [w for w in crud_wave.get_by_campaign(db, campaign_id=campaign.id)
                     if w.status == WaveStatus.PENDING.value]
        self.scheduler.enqueue_waves(remaining, campaign.id, now=now)

    # ==================== Status transitions ====================

    def pause(self, db: Session, *, campaign_id: str, org_id: str, user_id: Optional[str] = None) -> Campaign:
        campaign = self.get_campaign(db, campaign_id, org_id)
        return self._transition(
            db, campaign, [CampaignStatus.ACTIVE.value], CampaignStatus.PAUSED.value,
            "pause", updated_by_id=user_id,
        )

    def resume(self, db: Session, *, campaign_id: str, org_id: str, user_id: Optional[str] = None) -> Campaign:
        """Back to ACTIVE; waves that came due while paused are enqueued again."""
        campaign = self.get_campaign(db, campaign_id, org_id)
        self._transition(
            db, campaign, [CampaignStatus.PAUSED.value], CampaignStatus.ACTIVE.value,
            "resume", updated_by_id=user_id,
        )
        pending = [w for w in crud_wave.get_by_campaign(db, campaign_id=campaign_id)
                   if w.status == WaveStatus.PENDING.value]
        if pending:
            requeued = self.scheduler.enqueue_waves(pending, campaign_id)
            logger.info(f"Re-enqueued {requeued} pending waves of campaign {campaign_id}")
        return campaign

    def complete(self, db: Session, *, campaign_id: str, org_id: str, user_id: Optional[str] = None) -> Campaign:
        campaign = self.get_campaign(db, campaign_id, org_id)
        self._transition(
            db, campaign, [CampaignStatus.ACTIVE.value], CampaignStatus.COMPLETED.value,
            "complete", updated_by_id=user_id,
        )
        self.scheduler.cancel_pending_work(db, campaign)
        self.sequencer.sync_overdue(db, campaign_id=campaign_id)
        db.refresh(campaign)
        return campaign

    def cancel(
        self,
        db: Session,
        *,
        campaign_id: str,
        org_id: str,
        reason: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Campaign:
        """
        Cancel from any status before COMPLETED. Deferred tasks are removed
        and PENDING waves cancelled; LAUNCHED waves and their assignments stay.
        """
        campaign = self.get_campaign(db, campaign_id, org_id)
        values = {"updated_by_id": user_id}
        if reason:
            values["status_note"] = reason
        self._transition(
            db, campaign, CANCELLABLE_STATUSES, CampaignStatus.CANCELLED.value,
            "cancel", **values,
        )
        self.scheduler.cancel_pending_work(db, campaign)
        db.refresh(campaign)
        return campaign

    # ==================== Reporting ====================

    def get_statistics(self, db: Session, *, campaign_id: str, org_id: str) -> CampaignStatistics:
        campaign = self.get_campaign(db, campaign_id, org_id)
        if campaign.status in LIVE_STATUSES:
            self.sequencer.sync_overdue(db, campaign_id=campaign_id)
        counters = crud_campaign.recount_assignments(db, campaign_id=campaign_id)
        total = counters["total_assignments"]
        return CampaignStatistics(
            total=total,
            completed=counters["completed_assignments"],
            overdue=counters["overdue_assignments"],
            completion_percentage=round(counters["completed_assignments"] / total * 100) if total else 0,
        )


_default_lifecycle: Optional[CampaignLifecycle] = None


def get_campaign_lifecycle() -> CampaignLifecycle:
    global _default_lifecycle
    if _default_lifecycle is None:
        _default_lifecycle = CampaignLifecycle()
    return _default_lifecycle
