"""
Demo script that walks a simulated user through the fog.

This script sends fixes along a straight diagonal walk to demonstrate:
1. How every accepted fix reveals the 3x3 block of cells around it
2. How inaccurate fixes are filtered out (and degrade the stream if they persist)
3. How distance, level and percent explored grow as the walk goes on

Run the event_consumer.py in another terminal to see the events
(start the API with FOGMAP_PUBLISH_EVENTS=1):
    Terminal 1: python scripts/event_consumer.py
    Terminal 2: python scripts/demo_exploration.py

Usage:
    python scripts/demo_exploration.py
    python scripts/demo_exploration.py --steps 500
    python scripts/demo_exploration.py --noisy     # Mix in low-accuracy fixes
"""
import argparse
import random
import time

import requests

# Same walk as the simulated provider: 0.0001° (~10m) per step
START_LAT = 37.33233141
START_LON = -122.0312186
STEP_DEGREES = 0.0001

API_URL = "http://localhost:8000"


def main():
    parser = argparse.ArgumentParser(description="Demo fog-of-war exploration")
    parser.add_argument("--steps", type=int, default=200, help="Number of fixes to send (default: 200)")
    parser.add_argument("--noisy", action="store_true", help="Make 30%% of fixes too inaccurate to accept")
    parser.add_argument("--delay", type=float, default=0.02, help="Seconds between fixes")
    args = parser.parse_args()

    print("=" * 60)
    print("FOG EXPLORER DEMO - Simulated Walk")
    print("=" * 60)
    print()
    print(f"Start:  ({START_LAT}, {START_LON})")
    print(f"Steps:  {args.steps} x {STEP_DEGREES} degrees north-east")
    print(f"Noisy:  {args.noisy}")
    print()
    print("-" * 60)

    # Check API is running
    try:
        response = requests.get(f"{API_URL}/health", timeout=5)
        if response.status_code != 200:
            print("ERROR: API not healthy")
            return
        print("API is running")
    except requests.ConnectionError:
        print("ERROR: Cannot connect to API at", API_URL)
        print("Make sure to run: uvicorn src.fogmap.main:app --reload")
        return

    status = requests.post(f"{API_URL}/v1/tracking/start").json()
    if status["state"] != "active":
        print(f"ERROR: Tracking did not start: {status}")
        return
    requests.post(f"{API_URL}/v1/reset")

    print()
    print("Sending fixes...")
    print()

    for i in range(args.steps):
        accuracy = 5.0
        if args.noisy and random.random() < 0.3:
            accuracy = round(random.uniform(600, 2000), 1)

        response = requests.post(
            f"{API_URL}/v1/fixes",
            json={
                "lat": START_LAT + i * STEP_DEGREES,
                "lon": START_LON + i * STEP_DEGREES,
                "accuracy_m": accuracy,
            }
        )
        data = response.json()
        progress = data["progress"]

        if i % 20 == 0 or not data["accepted"]:
            marker = "ok " if data["accepted"] else "REJ"
            print(f"  step {i:4d} [{marker}] acc={accuracy:6.1f}m  "
                  f"cells={progress['visited_cells']:4d}  level={progress['level']}  "
                  f"miles={progress['total_distance_miles']:.3f}  state={data['tracking']['state']}")

        time.sleep(args.delay)

    print()
    print("-" * 60)

    progress = requests.get(f"{API_URL}/v1/progress").json()
    overlay = requests.get(f"{API_URL}/v1/overlay").json()

    print()
    print("PROGRESS:")
    print(f"  Distance:         {progress['total_distance_miles']:.3f} miles")
    print(f"  Level:            {progress['level']}")
    print(f"  Next level in:    {progress['cells_until_next_level']} cells")
    print(f"  Visited cells:    {progress['visited_cells']}")
    print(f"  Explored:         {progress['percent_explored']:.8f}% of the world")
    print(f"  Visible:          {progress['visible_percent']:.8f}% of the world")
    print()
    print("OVERLAY (current viewport):")
    print(f"  LOD:              {overlay['lod']}")
    print(f"  Holes:            {overlay['hole_count']}")
    print("=" * 60)


if __name__ == "__main__":
    main()
