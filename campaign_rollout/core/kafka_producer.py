# campaign_rollout/core/kafka_producer.py

import json
from kafka import KafkaProducer
from campaign_rollout.core.config import settings


def create_kafka_producer() -> KafkaProducer:
    return KafkaProducer(
        bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
        key_serializer=lambda k: k.encode("utf-8") if k else None,
        value_serializer=lambda v: json.dumps(v, default=str).encode("utf-8"),
        # Fail fast on connection issues instead of blocking a worker
        request_timeout_ms=5000,
    )

