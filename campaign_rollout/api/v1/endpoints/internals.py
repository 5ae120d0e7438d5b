# campaign_rollout/api/v1/endpoints/internals.py
"""Operator endpoints, authenticated with the internal API key."""

from typing import Optional
from datetime import date

from fastapi import APIRouter, Depends, Query

from campaign_rollout.api import deps
from campaign_rollout.background_tasks.reminder_tasks import (
    run_reminder_sweep,
    sync_overdue_assignments,
)
from campaign_rollout.scheduler import get_scheduler_status

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post("/reminders/sweep")
def trigger_reminder_sweep(
    day: Optional[date] = Query(None, alias="date"),
    api_key: str = Depends(deps.get_internal_api_key),
):
    """Runs the overdue sync and reminder sweep now instead of waiting for the daily job."""
    overdue = sync_overdue_assignments(day)
    stats = run_reminder_sweep(day)
    return {"overdue": overdue, **stats}


@router.get("/scheduler")
def scheduler_status(api_key: str = Depends(deps.get_internal_api_key)):
    return get_scheduler_status()
