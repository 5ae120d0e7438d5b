# campaign_rollout/tasks/celery_app.py
"""
Celery application configuration.

Runs the deferred wave and campaign launches with:
- Late acknowledgement so a lost worker hands the launch to another one
- Retry with exponential backoff for transient store failures
- A dedicated queue for launch work
"""

import ssl

from celery import Celery

from campaign_rollout.core.config import settings


def _ensure_ssl_params(url: str) -> str:
    """Append ssl_cert_reqs for rediss:// URLs (required by Celery)."""
    if url and url.startswith("rediss://") and "ssl_cert_reqs" not in url:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}ssl_cert_reqs=CERT_NONE"
    return url


broker_url = _ensure_ssl_params(settings.REDIS_URL)
backend_url = _ensure_ssl_params(settings.REDIS_URL)

celery_app = Celery(
    "campaign_rollout",
    broker=broker_url,
    backend=backend_url,
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution
    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,  # Requeue if worker dies
    worker_prefetch_multiplier=1,

    # Result backend
    result_expires=3600,

    # Countdown tasks wait in the broker; keep them invisible until due
    broker_transport_options={"visibility_timeout": 7 * 24 * 3600},

    task_routes={
        "campaign_rollout.tasks.campaign_tasks.*": {"queue": "campaign_launches"},
    },

    broker_use_ssl={"ssl_cert_reqs": ssl.CERT_NONE} if broker_url.startswith("rediss://") else None,
    redis_backend_use_ssl={"ssl_cert_reqs": ssl.CERT_NONE} if backend_url.startswith("rediss://") else None,
)

celery_app.autodiscover_tasks(["campaign_rollout.tasks"], related_name="campaign_tasks")
