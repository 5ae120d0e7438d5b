# campaign_rollout/services/event_sink.py
"""
Fire-and-forget lifecycle event publishing.

The engine never delivers notifications itself. It emits events such as
``campaign.reminder.due`` and downstream consumers decide how to deliver them.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from campaign_rollout.core.config import settings

logger = logging.getLogger(__name__)

CAMPAIGN_LAUNCHED = "campaign.launched"
CAMPAIGN_WAVE_LAUNCHED = "campaign.wave.launched"
CAMPAIGN_REMINDER_DUE = "campaign.reminder.due"
CAMPAIGN_LAUNCH_FAILED = "campaign.launch.failed"
CAMPAIGN_SCHEDULED = "campaign.scheduled"
CAMPAIGN_SCHEDULE_CANCELLED = "campaign.schedule.cancelled"


class EventSink(Protocol):
    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        ...


def _envelope(event_type: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": payload,
    }


class LoggingEventSink:
    """Sink used when Kafka is disabled (local runs, tests)."""

    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info("Event %s: %s", event_type, payload)


class KafkaEventSink:
    """Publishes lifecycle events to the campaign events topic."""

    def __init__(self, producer=None, topic: Optional[str] = None):
        self._producer = producer
        self.topic = topic or settings.CAMPAIGN_EVENTS_TOPIC

    @property
    def producer(self):
        if self._producer is None:
            from campaign_rollout.core.kafka_producer import create_kafka_producer

            self._producer = create_kafka_producer()
        return self._producer

    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        key = payload.get("campaign_id")
        try:
            self.producer.send(self.topic, key=key, value=_envelope(event_type, payload))
        except Exception as e:
            # Publishing is fire-and-forget; the state change already committed.
            logger.error(
                f"Failed to publish {event_type} for campaign {key}: {e}",
                exc_info=True,
            )


_default_sink: Optional[EventSink] = None


def get_event_sink() -> EventSink:
    """Process-wide sink chosen from settings."""
    global _default_sink
    if _default_sink is None:
        _default_sink = KafkaEventSink() if settings.EVENTS_ENABLED else LoggingEventSink()
    return _default_sink
