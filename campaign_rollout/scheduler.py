# campaign_rollout/scheduler.py
"""
Background job scheduler for the rollout engine.

Uses APScheduler to run periodic jobs for:
- The daily overdue sync and reminder sweep
- Recovering waves whose deferred launch task was lost
"""

import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED

from campaign_rollout.background_tasks.reminder_tasks import (
    daily_reminder_job,
    requeue_lost_waves,
)
from campaign_rollout.core.config import settings

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def _on_job_error(event):
    """Log scheduler job errors with full context."""
    exc = event.exception
    logger.error(
        "Scheduled job FAILED: job_id=%s error=%s",
        event.job_id, exc,
        exc_info=(type(exc), exc, None) if exc else None,
    )
    if event.traceback:
        logger.error("Traceback for job %s:\n%s", event.job_id, event.traceback)


def _on_job_missed(event):
    logger.warning(
        "Scheduled job MISSED: job_id=%s scheduled_run_time=%s",
        event.job_id,
        event.scheduled_run_time,
    )


def init_scheduler():
    """
    Initialize the background scheduler with all periodic jobs.

    This is called once when the application starts up.
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already initialized")
        return scheduler

    scheduler = BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            'coalesce': True,  # Combine missed executions
            'max_instances': 1,  # Only one instance of each job at a time
            # A sweep delayed by a restart still belongs to the same day
            'misfire_grace_time': 3600,
        }
    )

    # Job 1: Overdue sync followed by the reminder sweep
    # Runs daily at REMINDER_SWEEP_HOUR UTC
    scheduler.add_job(
        func=daily_reminder_job,
        trigger=CronTrigger(hour=settings.REMINDER_SWEEP_HOUR, minute=0),
        id='daily_reminder_sweep',
        name='Sync Overdue Assignments and Send Due Reminders',
        replace_existing=True
    )
    logger.info(f"Scheduled job: daily_reminder_sweep (daily at {settings.REMINDER_SWEEP_HOUR}:00 UTC)")

    # Job 2: Re-enqueue waves that passed their fire time without launching
    # Runs every 15 minutes
    scheduler.add_job(
        func=requeue_lost_waves,
        trigger=IntervalTrigger(minutes=15),
        id='requeue_lost_waves',
        name='Re-enqueue Lost Wave Launches',
        replace_existing=True
    )
    logger.info("Scheduled job: requeue_lost_waves (every 15 minutes)")

    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.add_listener(_on_job_missed, EVENT_JOB_MISSED)

    scheduler.start()
    logger.info("Background scheduler started successfully")

    return scheduler


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=True)
        logger.info("Background scheduler shutdown complete")
        scheduler = None


def get_scheduler():
    return scheduler


def get_scheduler_status():
    """
    Get the current status of all scheduled jobs.

    Returns:
        Dict with the scheduler state and each job's next run time
    """
    if scheduler is None:
        return {"status": "not_initialized", "jobs": []}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            "trigger": str(job.trigger)
        })

    return {
        "status": "running" if scheduler.running else "stopped",
        "jobs": jobs
    }
