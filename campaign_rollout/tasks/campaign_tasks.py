# campaign_rollout/tasks/campaign_tasks.py
"""
Celery tasks for deferred launches.

Both tasks are safe to run more than once: the executor's conditional
claims turn a duplicate or retried delivery into a no-op. Store failures
are retried with backoff; once retries are exhausted a
``campaign.launch.failed`` event is emitted and the wave stays PENDING.
"""

import logging
from typing import Any, Optional

from celery import shared_task

from campaign_rollout.core.config import settings
from campaign_rollout.core.exceptions import (
    CampaignValidationError,
    NotFoundError,
    TransientExecutionError,
)
from campaign_rollout.db.session import SessionLocal
from campaign_rollout.services import event_sink as events
from campaign_rollout.services.launch_executor import launch_executor
from campaign_rollout.services.task_queue import (
    CeleryTaskQueue,
    campaign_task_key,
    get_task_queue,
    wave_task_key,
)

logger = logging.getLogger(__name__)


def _release(key: str) -> None:
    queue = get_task_queue()
    if isinstance(queue, CeleryTaskQueue):
        queue.release(key)


def _emit_failure(campaign_id: str, wave_number: Optional[int], error: Exception, attempts: int) -> None:
    events.get_event_sink().emit(
        events.CAMPAIGN_LAUNCH_FAILED,
        {
            "campaign_id": campaign_id,
            "wave_number": wave_number,
            "error": str(error),
            "attempts": attempts,
        },
    )


@shared_task(
    bind=True,
    name="campaign_rollout.tasks.campaign_tasks.launch_wave_task",
    autoretry_for=(TransientExecutionError,),
    retry_backoff=True,
    retry_backoff_max=settings.LAUNCH_TASK_BACKOFF_MAX,
    max_retries=settings.LAUNCH_TASK_MAX_RETRIES,
    retry_jitter=True,
)
def launch_wave_task(self, campaign_id: str, wave_number: int) -> dict[str, Any]:
    """Launch one wave of a staggered campaign."""
    attempt = self.request.retries + 1
    logger.info(f"Launching wave {wave_number} of campaign {campaign_id} (attempt {attempt})")

    db = SessionLocal()
    try:
        count = launch_executor.launch_wave(db, campaign_id, wave_number)
    except TransientExecutionError as e:
        if self.request.retries >= self.max_retries:
            logger.error(f"Giving up on wave {wave_number} of campaign {campaign_id}: {e}")
            _emit_failure(campaign_id, wave_number, e, attempt)
            _release(wave_task_key(campaign_id, wave_number))
        raise
    except NotFoundError as e:
        logger.warning(f"Dropping wave task: {e.message}")
        _release(wave_task_key(campaign_id, wave_number))
        return {"status": "not_found", "assignments": 0}
    finally:
        db.close()

    _release(wave_task_key(campaign_id, wave_number))
    return {"status": "launched" if count else "skipped", "assignments": count}


@shared_task(
    bind=True,
    name="campaign_rollout.tasks.campaign_tasks.launch_campaign_task",
    autoretry_for=(TransientExecutionError,),
    retry_backoff=True,
    retry_backoff_max=settings.LAUNCH_TASK_BACKOFF_MAX,
    max_retries=settings.LAUNCH_TASK_MAX_RETRIES,
    retry_jitter=True,
)
def launch_campaign_task(self, campaign_id: str, launched_by_id: Optional[str] = None) -> dict[str, Any]:
    """Launch an IMMEDIATE campaign at its scheduled time."""
    attempt = self.request.retries + 1
    logger.info(f"Launching campaign {campaign_id} (attempt {attempt})")

    db = SessionLocal()
    try:
        count = launch_executor.launch_campaign(db, campaign_id, launched_by_id=launched_by_id)
    except TransientExecutionError as e:
        if self.request.retries >= self.max_retries:
            logger.error(f"Giving up on launch of campaign {campaign_id}: {e}")
            _emit_failure(campaign_id, None, e, attempt)
            _release(campaign_task_key(campaign_id))
        raise
    except CampaignValidationError as e:
        # The audience emptied out after scheduling; retrying will not help
        logger.error(f"Scheduled launch of campaign {campaign_id} rejected: {e.message}")
        _emit_failure(campaign_id, None, e, attempt)
        _release(campaign_task_key(campaign_id))
        return {"status": "rejected", "assignments": 0}
    except NotFoundError as e:
        logger.warning(f"Dropping campaign task: {e.message}")
        _release(campaign_task_key(campaign_id))
        return {"status": "not_found", "assignments": 0}
    finally:
        db.close()

    _release(campaign_task_key(campaign_id))
    return {"status": "launched" if count else "skipped", "assignments": count}
