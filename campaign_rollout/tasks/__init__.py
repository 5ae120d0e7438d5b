# campaign_rollout/tasks/__init__.py
"""Deferred launch tasks run by Celery workers."""

from campaign_rollout.tasks.celery_app import celery_app
from campaign_rollout.tasks.campaign_tasks import launch_campaign_task, launch_wave_task

__all__ = [
    "celery_app",
    "launch_wave_task",
    "launch_campaign_task",
]
