# campaign_rollout/api/v1/endpoints/campaigns.py
"""
API endpoints for campaign scheduling, rollout and lifecycle.

- Create, list and edit campaigns (edits limited by status)
- Schedule a future launch with an optional staggered rollout
- Launch, pause, resume, complete and cancel
- Reminder sequence configuration and assignment completion
- Translation staleness after content edits
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from campaign_rollout.api import deps
from campaign_rollout.crud import campaign as crud_campaign
from campaign_rollout.crud import campaign_assignment as crud_assignment
from campaign_rollout.db.session import get_db
from campaign_rollout.schemas.campaign import (
    AssignmentResponse,
    AssignmentStatus,
    CampaignCreate,
    CampaignResponse,
    CampaignStatistics,
    CampaignUpdate,
    CancelScheduleRequest,
    DeadlineExtensionRequest,
    ReminderSequence,
    ScheduleDetails,
    ScheduleLaunchRequest,
    StaleTranslations,
    TranslationStatus,
    WaveResponse,
)
from campaign_rollout.schemas.token import TokenPayload
from campaign_rollout.services.blackout_calendar import blackout_calendar
from campaign_rollout.services.launch_scheduler import LaunchScheduler
from campaign_rollout.services.lifecycle import CampaignLifecycle
from campaign_rollout.services.translations import translation_tracker

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Campaigns"])


@router.post(
    "/organizations/{orgId}/campaigns",
    response_model=CampaignResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_campaign(
    orgId: str,
    campaign_in: CampaignCreate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Creates a DRAFT campaign for the specified organization."""
    deps.ensure_org_access(current_user, orgId)
    return crud_campaign.create_with_organization(
        db, obj_in=campaign_in, org_id=orgId, user_id=current_user.sub
    )


@router.get("/organizations/{orgId}/campaigns", response_model=List[CampaignResponse])
def list_campaigns(
    orgId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
):
    deps.ensure_org_access(current_user, orgId)
    return crud_campaign.get_multi_by_org(
        db, org_id=orgId, skip=(page - 1) * limit, limit=limit
    )


@router.get("/organizations/{orgId}/campaigns/{campaignId}", response_model=CampaignResponse)
def get_campaign(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.get_campaign(db, campaignId, orgId)


@router.patch("/organizations/{orgId}/campaigns/{campaignId}", response_model=CampaignResponse)
def update_campaign(
    orgId: str,
    campaignId: str,
    campaign_in: CampaignUpdate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    """
    Edits a campaign. Live (ACTIVE/PAUSED) campaigns only accept
    `status_note` and `reminder_config`; finished campaigns accept nothing.
    """
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.update(
        db, campaign_id=campaignId, org_id=orgId, changes=campaign_in, user_id=current_user.sub
    )


# ==================== Scheduling ====================


@router.post(
    "/organizations/{orgId}/campaigns/{campaignId}/schedule",
    response_model=ScheduleDetails,
    status_code=status.HTTP_201_CREATED,
)
def schedule_launch(
    orgId: str,
    campaignId: str,
    schedule_in: ScheduleLaunchRequest,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    scheduler: LaunchScheduler = Depends(deps.get_scheduler),
):
    """Schedules a DRAFT campaign to launch at `scheduled_at`."""
    deps.ensure_org_access(current_user, orgId)
    return scheduler.schedule_launch(
        db,
        campaign_id=campaignId,
        org_id=orgId,
        scheduled_at=schedule_in.scheduled_at,
        rollout_config=schedule_in.rollout_config,
        strategy=schedule_in.rollout_strategy,
        user_id=current_user.sub,
    )


@router.delete(
    "/organizations/{orgId}/campaigns/{campaignId}/schedule",
    response_model=CampaignResponse,
)
def cancel_scheduled_launch(
    orgId: str,
    campaignId: str,
    cancel_in: Optional[CancelScheduleRequest] = None,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    scheduler: LaunchScheduler = Depends(deps.get_scheduler),
):
    """Cancels a scheduled launch and returns the campaign to DRAFT."""
    deps.ensure_org_access(current_user, orgId)
    return scheduler.cancel_scheduled_launch(
        db,
        campaign_id=campaignId,
        org_id=orgId,
        reason=cancel_in.reason if cancel_in else None,
        user_id=current_user.sub,
    )


@router.get(
    "/organizations/{orgId}/campaigns/{campaignId}/waves",
    response_model=List[WaveResponse],
)
def list_waves(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    scheduler: LaunchScheduler = Depends(deps.get_scheduler),
):
    deps.ensure_org_access(current_user, orgId)
    return scheduler.get_waves(db, campaign_id=campaignId, org_id=orgId)


# ==================== Lifecycle ====================


@router.post("/organizations/{orgId}/campaigns/{campaignId}/launch", response_model=CampaignResponse)
def launch_campaign(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    """Launches now; staggered campaigns send their first wave immediately."""
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.launch(db, campaign_id=campaignId, org_id=orgId, user_id=current_user.sub)


@router.post("/organizations/{orgId}/campaigns/{campaignId}/pause", response_model=CampaignResponse)
def pause_campaign(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.pause(db, campaign_id=campaignId, org_id=orgId, user_id=current_user.sub)


@router.post("/organizations/{orgId}/campaigns/{campaignId}/resume", response_model=CampaignResponse)
def resume_campaign(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.resume(db, campaign_id=campaignId, org_id=orgId, user_id=current_user.sub)


@router.post("/organizations/{orgId}/campaigns/{campaignId}/complete", response_model=CampaignResponse)
def complete_campaign(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.complete(db, campaign_id=campaignId, org_id=orgId, user_id=current_user.sub)


@router.post("/organizations/{orgId}/campaigns/{campaignId}/cancel", response_model=CampaignResponse)
def cancel_campaign(
    orgId: str,
    campaignId: str,
    cancel_in: Optional[CancelScheduleRequest] = None,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.cancel(
        db,
        campaign_id=campaignId,
        org_id=orgId,
        reason=cancel_in.reason if cancel_in else None,
        user_id=current_user.sub,
    )


@router.get(
    "/organizations/{orgId}/campaigns/{campaignId}/statistics",
    response_model=CampaignStatistics,
)
def get_campaign_statistics(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    return lifecycle.get_statistics(db, campaign_id=campaignId, org_id=orgId)


@router.post(
    "/organizations/{orgId}/campaigns/{campaignId}/extend-deadline",
    response_model=CampaignResponse,
)
def extend_deadline(
    orgId: str,
    campaignId: str,
    extension_in: DeadlineExtensionRequest,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Pushes the campaign due date and every assignment due date back."""
    deps.ensure_org_access(current_user, orgId)
    return blackout_calendar.extend_deadlines(
        db, campaign_id=campaignId, org_id=orgId, days=extension_in.days
    )


# ==================== Reminders ====================


@router.get(
    "/organizations/{orgId}/campaigns/{campaignId}/reminders",
    response_model=ReminderSequence,
)
def get_reminder_sequence(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    steps = lifecycle.sequencer.get_sequence(db, campaign_id=campaignId, org_id=orgId)
    return ReminderSequence(steps=steps)


@router.put(
    "/organizations/{orgId}/campaigns/{campaignId}/reminders",
    response_model=ReminderSequence,
)
def set_reminder_sequence(
    orgId: str,
    campaignId: str,
    sequence_in: ReminderSequence,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    steps = lifecycle.sequencer.set_sequence(
        db,
        campaign_id=campaignId,
        org_id=orgId,
        steps=sequence_in.steps,
        user_id=current_user.sub,
    )
    return ReminderSequence(steps=steps)


# ==================== Assignments ====================


@router.get(
    "/organizations/{orgId}/campaigns/{campaignId}/assignments",
    response_model=List[AssignmentResponse],
)
def list_assignments(
    orgId: str,
    campaignId: str,
    status_filter: Optional[AssignmentStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
    lifecycle: CampaignLifecycle = Depends(deps.get_lifecycle),
):
    deps.ensure_org_access(current_user, orgId)
    lifecycle.get_campaign(db, campaignId, orgId)
    return crud_assignment.get_by_campaign(
        db,
        campaign_id=campaignId,
        status=status_filter.value if status_filter else None,
    )


@router.post(
    "/organizations/{orgId}/campaigns/{campaignId}/assignments/{assignmentId}/complete",
    response_model=AssignmentResponse,
)
def complete_assignment(
    orgId: str,
    campaignId: str,
    assignmentId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Marks an open or overdue assignment completed."""
    deps.ensure_org_access(current_user, orgId)
    assignment = crud_assignment.get_for_org(db, id=assignmentId, org_id=orgId)
    if not assignment or assignment.campaign_id != campaignId:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found"
        )
    completed = crud_assignment.complete(db, assignment_id=assignmentId)
    if completed is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Assignment is {assignment.status} and cannot be completed",
        )
    return completed


# ==================== Translations ====================


@router.get(
    "/organizations/{orgId}/campaigns/translations/stale",
    response_model=List[StaleTranslations],
)
def list_stale_translations(
    orgId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Campaigns edited since at least one of their translations was reviewed."""
    deps.ensure_org_access(current_user, orgId)
    return translation_tracker.get_stale_translations(db, org_id=orgId)


@router.get(
    "/organizations/{orgId}/campaigns/{campaignId}/translations",
    response_model=List[TranslationStatus],
)
def get_translation_status(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    deps.ensure_org_access(current_user, orgId)
    return translation_tracker.get_translation_status(db, campaign_id=campaignId, org_id=orgId)


@router.post(
    "/organizations/{orgId}/campaigns/{campaignId}/translations/mark-updated",
    response_model=CampaignResponse,
)
def mark_translation_updated(
    orgId: str,
    campaignId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Clears the stale flag of a translation after review."""
    deps.ensure_org_access(current_user, orgId)
    return translation_tracker.mark_as_updated(db, translation_id=campaignId, org_id=orgId)
