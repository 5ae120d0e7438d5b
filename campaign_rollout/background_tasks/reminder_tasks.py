# campaign_rollout/background_tasks/reminder_tasks.py
"""
Background jobs for reminders and overdue tracking.

Run by the APScheduler instance in ``campaign_rollout.scheduler``:
1. Move assignments past their due date to OVERDUE (daily)
2. Fire the reminder steps due today (daily, after the overdue sync)
3. Re-enqueue waves and launches whose deferred task was lost (every 15 minutes)
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from campaign_rollout.db.session import SessionLocal
from campaign_rollout.services.launch_scheduler import get_launch_scheduler
from campaign_rollout.services.reminder_sequencer import reminder_sequencer
from campaign_rollout.utils.time import utcnow

logger = logging.getLogger(__name__)


def sync_overdue_assignments(today: Optional[date] = None) -> int:
    """
    Background task: flip open assignments of ACTIVE campaigns past their due
    date to OVERDUE and record the missed deadlines.

    Returns: Number of assignments that became overdue
    """
    db = SessionLocal()
    try:
        count = reminder_sequencer.sync_all_overdue(db, today=today or utcnow().date())
        if count > 0:
            logger.info(f"Marked {count} assignments overdue")
        return count

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error in sync_overdue_assignments task: {str(e)}")
        return 0

    finally:
        db.close()


def run_reminder_sweep(today: Optional[date] = None) -> dict:
    """
    Background task: dispatch every reminder step due today.

    A sweep that runs twice on the same day dispatches nothing the second
    time. Returns the sweep stats.
    """
    today = today or utcnow().date()
    db = SessionLocal()
    try:
        return reminder_sequencer.run_sweep(db, today=today)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error in reminder sweep for {today}: {str(e)}")
        return {"date": today.isoformat(), "due": 0, "dispatched": 0, "skipped": 0}

    finally:
        db.close()


def daily_reminder_job() -> dict:
    """Overdue sync then reminder sweep, so +N day steps see fresh statuses."""
    today = utcnow().date()
    sync_overdue_assignments(today)
    return run_reminder_sweep(today)


def requeue_lost_waves() -> int:
    """
    Background task: re-enqueue PENDING waves of live campaigns, and launch
    tasks of SCHEDULED IMMEDIATE campaigns, whose fire time has passed
    without a launch.
    """
    db = SessionLocal()
    try:
        scheduler = get_launch_scheduler()
        return scheduler.requeue_due_waves(db) + scheduler.requeue_due_launches(db)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error in requeue_lost_waves task: {str(e)}")
        return 0

    finally:
        db.close()
