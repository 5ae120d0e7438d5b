# campaign_rollout/db/redis.py
import redis
from campaign_rollout.core.config import settings


def get_redis_client():
    """
    Creates and returns a new Redis client instance.
    Connections are opened lazily on first command, so this is safe at import.
    """
    return redis.from_url(settings.REDIS_URL, decode_responses=True)
