# campaign_rollout/services/task_queue.py
"""
Deferred task queue.

The launch scheduler talks to a ``TaskQueue``: ``enqueue(key, payload, delay)``
and ``cancel(key)``. Keys are deterministic (``"{campaign_id}:{wave_number}"``)
so enqueueing the same key twice is suppressed, and cancelling a key whose
task already fired is a no-op.

Two implementations:
- ``CeleryTaskQueue`` for deployments (Celery countdown tasks plus a Redis
  key registry for duplicate suppression and revocation)
- ``InMemoryTaskQueue`` for tests and local runs (a timer heap drained by
  ``run_due``)
"""

import heapq
import itertools
import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Protocol, Union

from campaign_rollout.core.config import settings
from campaign_rollout.utils.time import utcnow

logger = logging.getLogger(__name__)

LAUNCH_WAVE = "launch_wave"
LAUNCH_CAMPAIGN = "launch_campaign"

TASK_NAMES = {
    LAUNCH_WAVE: "campaign_rollout.tasks.campaign_tasks.launch_wave_task",
    LAUNCH_CAMPAIGN: "campaign_rollout.tasks.campaign_tasks.launch_campaign_task",
}

Delay = Union[timedelta, float, int]


def wave_task_key(campaign_id: str, wave_number: int) -> str:
    return f"{campaign_id}:{wave_number}"


def campaign_task_key(campaign_id: str) -> str:
    return f"{campaign_id}:launch"


def _seconds(delay: Delay) -> float:
    if isinstance(delay, timedelta):
        return delay.total_seconds()
    return float(delay)


class TaskQueue(Protocol):
    def enqueue(self, key: str, payload: dict[str, Any], delay: Delay) -> bool:
        """Schedule ``payload`` to fire after ``delay``; False if ``key`` is taken."""
        ...

    def cancel(self, key: str) -> bool:
        """Remove a not-yet-fired task; False if nothing was pending."""
        ...


class InMemoryTaskQueue:
    """
    In-process timer heap. Cancelled entries are dropped lazily on pop.

    A handler that raises is retried like the Celery tasks: up to
    ``max_retries`` times, with a doubling delay capped at ``backoff_max``
    seconds.
    """

    def __init__(
        self,
        handler: Optional[Callable[[str, dict], Any]] = None,
        max_retries: Optional[int] = None,
        backoff_max: Optional[int] = None,
    ):
        self.handler = handler
        self.max_retries = settings.LAUNCH_TASK_MAX_RETRIES if max_retries is None else max_retries
        self.backoff_max = settings.LAUNCH_TASK_BACKOFF_MAX if backoff_max is None else backoff_max
        self._heap: list[tuple[datetime, int, str]] = []
        self._pending: dict[str, tuple[datetime, dict]] = {}
        self._retries: dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def enqueue(self, key: str, payload: dict[str, Any], delay: Delay) -> bool:
        fire_at = utcnow() + timedelta(seconds=_seconds(delay))
        with self._lock:
            if key in self._pending:
                logger.info(f"Task {key} already queued; duplicate suppressed")
                return False
            self._retries.pop(key, None)
            self._push(key, payload, fire_at)
        return True

    def _push(self, key: str, payload: dict[str, Any], fire_at: datetime) -> None:
        self._pending[key] = (fire_at, dict(payload))
        heapq.heappush(self._heap, (fire_at, next(self._counter), key))

    def cancel(self, key: str) -> bool:
        with self._lock:
            self._retries.pop(key, None)
            return self._pending.pop(key, None) is not None

    def retries(self, key: str) -> int:
        with self._lock:
            return self._retries.get(key, 0)

    def pending_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._pending, key=lambda k: self._pending[k][0])

    def get(self, key: str) -> Optional[tuple[datetime, dict]]:
        with self._lock:
            return self._pending.get(key)

    def pop_next_due(self, now: Optional[datetime] = None) -> Optional[tuple[str, dict]]:
        """Remove and return the earliest task whose fire time has passed."""
        now = now or utcnow()
        with self._lock:
            while self._heap and self._heap[0][0] <= now:
                fire_at, _, key = heapq.heappop(self._heap)
                entry = self._pending.get(key)
                # Skip entries that were cancelled or re-enqueued later
                if entry is None or entry[0] != fire_at:
                    continue
                del self._pending[key]
                return key, entry[1]
        return None

    def _retry_later(self, key: str, payload: dict, now: datetime, error: Exception) -> None:
        with self._lock:
            if key in self._pending:
                # Re-enqueued by the handler itself
                return
            retries = self._retries.get(key, 0)
            if retries >= self.max_retries:
                self._retries.pop(key, None)
                logger.error(f"Task {key} failed after {retries + 1} attempts; giving up: {error}")
                return
            self._retries[key] = retries + 1
            countdown = min(2 ** retries, self.backoff_max)
            self._push(key, payload, now + timedelta(seconds=countdown))
        logger.warning(f"Task {key} failed ({error}); retry {retries + 1} in {countdown}s")

    def run_due(self, now: Optional[datetime] = None) -> int:
        """
        Fire due tasks one at a time through ``handler``; returns how many
        fired. A failing task is re-enqueued with backoff and the rest of
        the batch still runs.
        """
        now = now or utcnow()
        fired = 0
        while True:
            entry = self.pop_next_due(now)
            if entry is None:
                return fired
            key, payload = entry
            if self.handler is None:
                logger.warning(f"No handler registered; dropping task {key}")
                continue
            fired += 1
            try:
                self.handler(key, payload)
            except Exception as e:
                self._retry_later(key, payload, now, e)
                continue
            with self._lock:
                self._retries.pop(key, None)


class CeleryTaskQueue:
    """
    Celery-backed queue.

    Each enqueue gets a fresh Celery task ID recorded in Redis under the
    deterministic key, so a cancelled-then-rescheduled key is not caught by
    the workers' revoked-ID list.
    """

    key_prefix = "campaign_rollout:task:"
    # Registry entries outlive their fire time by this margin
    registry_grace = timedelta(days=1)

    def __init__(self, celery_app=None, redis_client=None):
        self._celery_app = celery_app
        self._redis = redis_client

    @property
    def celery_app(self):
        if self._celery_app is None:
            from campaign_rollout.tasks.celery_app import celery_app

            self._celery_app = celery_app
        return self._celery_app

    @property
    def redis(self):
        if self._redis is None:
            from campaign_rollout.db.redis import get_redis_client

            self._redis = get_redis_client()
        return self._redis

    def enqueue(self, key: str, payload: dict[str, Any], delay: Delay) -> bool:
        action = payload.get("action")
        if action not in TASK_NAMES:
            raise ValueError(f"Unknown task action {action!r} for key {key}")

        countdown = max(_seconds(delay), 0.0)
        task_id = f"{key}:{uuid.uuid4().hex[:8]}"
        ttl = int(countdown + self.registry_grace.total_seconds())
        if not self.redis.set(self.key_prefix + key, task_id, nx=True, ex=ttl):
            logger.info(f"Task {key} already queued; duplicate suppressed")
            return False

        kwargs = {k: v for k, v in payload.items() if k != "action"}
        self.celery_app.send_task(
            TASK_NAMES[action],
            kwargs=kwargs,
            countdown=countdown,
            task_id=task_id,
        )
        logger.info(f"Enqueued {action} task {task_id} with countdown {countdown:.0f}s")
        return True

    def cancel(self, key: str) -> bool:
        task_id = self.redis.get(self.key_prefix + key)
        if not task_id:
            return False
        self.celery_app.control.revoke(task_id)
        self.redis.delete(self.key_prefix + key)
        logger.info(f"Revoked task {task_id} for key {key}")
        return True

    def release(self, key: str) -> None:
        """Called by the task once it has fired."""
        self.redis.delete(self.key_prefix + key)


_default_queue: Optional[TaskQueue] = None


def get_task_queue() -> TaskQueue:
    """Process-wide queue; Celery in deployments."""
    global _default_queue
    if _default_queue is None:
        _default_queue = CeleryTaskQueue()
    return _default_queue
