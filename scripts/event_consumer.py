"""
Tail the exploration event stream.

Start the API with FOGMAP_PUBLISH_EVENTS=1, then run this next to
demo_exploration.py to watch fixes, level-ups and location errors arrive.

Usage:
    python scripts/event_consumer.py
    python scripts/event_consumer.py --replay            # Start from the oldest event
    python scripts/event_consumer.py --session a1b2c3    # One session only
    python scripts/event_consumer.py --quiet             # Hide position_accepted
"""
import argparse
import os
import sys
from collections import Counter

# Add project root to path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.fogmap.events import STREAM_NAME, get_stream_length, read_events
from src.fogmap.redis_client import REDIS_HOST, REDIS_PORT, get_redis_client, redis_status


def clock(event: dict) -> str:
    """HH:MM:SS part of the event's ISO timestamp."""
    timestamp = event.get("timestamp", "")
    return timestamp[11:19] if len(timestamp) >= 19 else timestamp


def describe(event: dict) -> str:
    kind = event.get("event_type", "unknown")
    if kind == "position_accepted":
        return (f"fix ({event.get('lat')}, {event.get('lon')}) +/-{event.get('accuracy_m')}m, "
                f"+{event.get('new_cells')} cells, {event.get('visited_cells')} total, "
                f"{float(event.get('total_distance_miles', 0)):.3f} mi")
    if kind == "level_up":
        return f"*** level {event.get('level')} reached at {event.get('visited_cells')} cells ***"
    if kind == "location_error":
        scope = "persistent" if event.get("persistent") == "1" else "transient"
        return f"{scope} {event.get('kind')}: {event.get('message')}"
    if kind == "exploration_reset":
        return "exploration reset"
    return f"{kind} {event}"


def main():
    parser = argparse.ArgumentParser(description="Tail the fog explorer event stream")
    parser.add_argument("--replay", action="store_true", help="Read the stream from its first event")
    parser.add_argument("--session", help="Only show events for this session id")
    parser.add_argument("--quiet", action="store_true", help="Hide position_accepted events")
    args = parser.parse_args()

    client = get_redis_client()
    if redis_status(client) != "connected":
        print(f"Redis is not reachable at {REDIS_HOST}:{REDIS_PORT}")
        sys.exit(1)

    print(f"{STREAM_NAME}: {get_stream_length(client)} events stored, Ctrl+C to stop")

    seen = Counter()
    last_id = "0" if args.replay else "$"
    try:
        while True:
            for event_id, event in read_events(client, last_id=last_id, count=50, block_ms=1000):
                last_id = event_id
                if args.session and event.get("session_id") != args.session:
                    continue
                seen[event.get("event_type", "unknown")] += 1
                if args.quiet and event.get("event_type") == "position_accepted":
                    continue
                print(f"[{clock(event)}] {event.get('session_id', '?')[:8]} {describe(event)}")
    except KeyboardInterrupt:
        print()
        for kind, count in seen.most_common():
            print(f"  {kind}: {count}")


if __name__ == "__main__":
    main()
