"""
Event publishing using Redis Streams.

The engine appends an event whenever something a downstream consumer may
care about happens: an accepted position, a level-up, a surfaced location
error, a reset. Consumers (analytics, notifications, the demo consumer
script) read the stream independently of the session.

Stream name: "exploration:events"
Event types: "position_accepted", "level_up", "location_error", "exploration_reset"
"""
import redis
from datetime import datetime, timezone


# Stream configuration
STREAM_NAME = "exploration:events"
MAX_STREAM_LENGTH = 10000  # Keep last 10k events (prevents unbounded growth)


def _append(redis_client: redis.Redis, event_data: dict) -> str:
    event_data["timestamp"] = datetime.now(timezone.utc).isoformat()

    # MAXLEN ~ keeps approximately MAX_STREAM_LENGTH events
    return redis_client.xadd(
        STREAM_NAME,
        event_data,
        maxlen=MAX_STREAM_LENGTH,
        approximate=True
    )


def publish_position_event(
    redis_client: redis.Redis,
    session_id: str,
    lat: float,
    lon: float,
    accuracy_m: float,
    new_cells: int,
    visited_cells: int,
    total_distance_miles: float
) -> str:
    """
    Publish an accepted-position event to the Redis stream.

    Args:
        redis_client: Redis connection
        session_id: Exploration session that accepted the fix
        lat: Latitude
        lon: Longitude
        accuracy_m: Horizontal accuracy of the fix
        new_cells: Cells newly revealed by this position
        visited_cells: Visited cell count after the update
        total_distance_miles: Running distance after the update

    Returns:
        Event ID assigned by Redis (e.g., "1234567890123-0")
    """
    return _append(redis_client, {
        "event_type": "position_accepted",
        "session_id": session_id,
        "lat": str(lat),
        "lon": str(lon),
        "accuracy_m": str(accuracy_m),
        "new_cells": str(new_cells),
        "visited_cells": str(visited_cells),
        "total_distance_miles": f"{total_distance_miles:.6f}",
    })


def publish_level_up_event(
    redis_client: redis.Redis,
    session_id: str,
    level: int,
    visited_cells: int
) -> str:
    """
    Publish a level-up event.

    This is a separate event type so consumers can filter for it to trigger
    notifications or badges without scanning every position.
    """
    return _append(redis_client, {
        "event_type": "level_up",
        "session_id": session_id,
        "level": str(level),
        "visited_cells": str(visited_cells),
    })


def publish_location_error_event(
    redis_client: redis.Redis,
    session_id: str,
    kind: str,
    message: str,
    persistent: bool
) -> str:
    """Publish a surfaced location error."""
    return _append(redis_client, {
        "event_type": "location_error",
        "session_id": session_id,
        "kind": kind,
        "message": message,
        "persistent": "1" if persistent else "0",
    })


def publish_reset_event(redis_client: redis.Redis, session_id: str) -> str:
    """Publish a user-requested exploration reset."""
    return _append(redis_client, {
        "event_type": "exploration_reset",
        "session_id": session_id,
    })


def read_events(
    redis_client: redis.Redis,
    last_id: str = "0",
    count: int = 100,
    block_ms: int = None
) -> list:
    """
    Read events from the stream.

    Args:
        redis_client: Redis connection
        last_id: Read events after this ID ("0" for all, "$" for only new)
        count: Maximum number of events to return
        block_ms: If set, block for this many milliseconds waiting for new events

    Returns:
        List of (event_id, event_data) tuples
    """
    kwargs = {"count": count}
    if block_ms is not None:
        kwargs["block"] = block_ms
    result = redis_client.xread({STREAM_NAME: last_id}, **kwargs)

    # xread returns: [(stream_name, [(id, data), (id, data), ...])]
    if not result:
        return []
    return result[0][1]


def get_stream_length(redis_client: redis.Redis) -> int:
    """Get the current number of events in the stream."""
    return redis_client.xlen(STREAM_NAME)
