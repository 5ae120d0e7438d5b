# campaign_rollout/api/v1/endpoints/blackouts.py
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from campaign_rollout.api import deps
from campaign_rollout.crud import blackout_date as crud_blackout
from campaign_rollout.db.session import get_db
from campaign_rollout.schemas.blackout import (
    AvailabilityResponse,
    BlackoutDateCreate,
    BlackoutDateResponse,
    BlackoutDateUpdate,
)
from campaign_rollout.schemas.token import TokenPayload
from campaign_rollout.services.blackout_calendar import blackout_calendar

router = APIRouter(tags=["Blackout Dates"])


def _get_window_or_404(db: Session, blackout_id: str, org_id: str):
    window = crud_blackout.get_for_org(db, id=blackout_id, org_id=org_id)
    if not window:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Blackout window not found"
        )
    return window


@router.post(
    "/organizations/{orgId}/blackouts",
    response_model=BlackoutDateResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_blackout(
    orgId: str,
    blackout_in: BlackoutDateCreate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Creates a blackout window; no launch or wave may fall inside it."""
    deps.ensure_org_access(current_user, orgId)
    return crud_blackout.create_with_organization(
        db, obj_in=blackout_in, org_id=orgId, user_id=current_user.sub
    )


@router.get("/organizations/{orgId}/blackouts", response_model=List[BlackoutDateResponse])
def list_blackouts(
    orgId: str,
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    deps.ensure_org_access(current_user, orgId)
    return crud_blackout.get_multi_by_org(db, org_id=orgId, include_inactive=include_inactive)


# Declared before /{blackoutId} so "availability" is not read as an ID
@router.get("/organizations/{orgId}/blackouts/availability", response_model=AvailabilityResponse)
def check_availability(
    orgId: str,
    day: date = Query(..., alias="date"),
    location_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Whether `date` is blacked out, and the first date on or after it that is not."""
    deps.ensure_org_access(current_user, orgId)
    return AvailabilityResponse(
        date=day,
        is_blackout=blackout_calendar.is_blackout(db, day, orgId, location_id),
        next_available=blackout_calendar.next_available(db, day, orgId, location_id),
    )


@router.get("/organizations/{orgId}/blackouts/{blackoutId}", response_model=BlackoutDateResponse)
def get_blackout(
    orgId: str,
    blackoutId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    deps.ensure_org_access(current_user, orgId)
    return _get_window_or_404(db, blackoutId, orgId)


@router.patch("/organizations/{orgId}/blackouts/{blackoutId}", response_model=BlackoutDateResponse)
def update_blackout(
    orgId: str,
    blackoutId: str,
    blackout_in: BlackoutDateUpdate,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    deps.ensure_org_access(current_user, orgId)
    window = _get_window_or_404(db, blackoutId, orgId)
    return crud_blackout.update_window(db, db_obj=window, obj_in=blackout_in)


@router.delete("/organizations/{orgId}/blackouts/{blackoutId}", response_model=BlackoutDateResponse)
def delete_blackout(
    orgId: str,
    blackoutId: str,
    db: Session = Depends(get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """Soft-deletes the window; it stops blocking dates immediately."""
    deps.ensure_org_access(current_user, orgId)
    window = _get_window_or_404(db, blackoutId, orgId)
    return crud_blackout.soft_delete(db, db_obj=window)
