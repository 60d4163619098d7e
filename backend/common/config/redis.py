"""Redis connection settings for telemetry pub/sub."""
from __future__ import annotations

import os

from redis.asyncio import Redis

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_TELEMETRY_CHANNEL_PREFIX = os.getenv("REDIS_TELEMETRY_CHANNEL_PREFIX", "telemetry")

# A stalled Redis must never hold a frame cycle longer than these.
REDIS_SOCKET_TIMEOUT_SEC = float(os.getenv("REDIS_SOCKET_TIMEOUT_SEC", "0.5"))
REDIS_CONNECT_TIMEOUT_SEC = float(os.getenv("REDIS_CONNECT_TIMEOUT_SEC", "0.5"))
TELEMETRY_PUBLISH_TIMEOUT_SEC = float(os.getenv("TELEMETRY_PUBLISH_TIMEOUT_SEC", "1.0"))
TELEMETRY_QUEUE_SIZE = int(os.getenv("TELEMETRY_QUEUE_SIZE", "64"))


def telemetry_channel(session_id: str) -> str:
    """Pub/sub channel carrying one session's detections and metrics."""
    return f"{REDIS_TELEMETRY_CHANNEL_PREFIX}:{session_id}"


def create_async_redis_client(socket_timeout: float | None = REDIS_SOCKET_TIMEOUT_SEC) -> Redis:
    """
    Async client with bounded connect and read times.

    Pub/sub listeners pass ``socket_timeout=None`` and poll with their own
    ``get_message`` timeout instead.
    """
    return Redis.from_url(
        REDIS_URL,
        decode_responses=True,
        socket_timeout=socket_timeout,
        socket_connect_timeout=REDIS_CONNECT_TIMEOUT_SEC,
    )
