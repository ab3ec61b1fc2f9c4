"""
Redis connection used for the exploration event stream.
"""
import os

import redis
from redis.exceptions import RedisError

from . import metrics

REDIS_HOST = os.getenv("REDIS_HOST", "127.0.0.1")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_TIMEOUT_SECONDS = float(os.getenv("REDIS_TIMEOUT_SECONDS", "2.0"))


def get_redis_client() -> redis.Redis:
    return redis.Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        db=REDIS_DB,
        socket_timeout=REDIS_TIMEOUT_SECONDS,
        decode_responses=True,
    )


def redis_status(redis_client: redis.Redis) -> str:
    """
    Ping Redis for the health endpoint.

    Returns:
        "connected" or "disconnected"
    """
    try:
        redis_client.ping()
    except RedisError:
        metrics.redis_operations_total.labels(operation="ping", status="error").inc()
        return "disconnected"
    metrics.redis_operations_total.labels(operation="ping", status="success").inc()
    return "connected"
