"""
Location provider implementations.

PushLocationProvider is fed from outside (HTTP requests, a device bridge,
tests). SimulatedWalkProvider generates a straight diagonal walk for demos.
"""
import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

import structlog

from .location import AccuracyMode, PermissionState, Position, ProviderSignal

log = structlog.get_logger()

# Simulated walk: 0.0001° ≈ 10m per tick, starting in Cupertino
WALK_START_LAT = 37.33233141
WALK_START_LON = -122.0312186
WALK_STEP_DEGREES = 0.0001
WALK_ACCURACY_M = 5.0


class PushLocationProvider:
    """
    Provider whose fixes are pushed in by the caller.

    Delivery is synchronous on the pushing thread; an internal lock keeps it
    to one delivery at a time.
    """

    def __init__(self, permission: PermissionState = PermissionState.GRANTED, services_enabled: bool = True):
        self.permission = permission
        self.enabled = services_enabled
        self.accuracy_mode = AccuracyMode.FINE
        self.subscribe_count = 0
        self._subscribers: dict[int, tuple[Callable, Callable]] = {}
        self._handles = itertools.count(1)
        self._lock = threading.Lock()

    def services_enabled(self) -> bool:
        return self.enabled

    def request_permission(self) -> PermissionState:
        return self.permission

    def subscribe(self, on_fix: Callable[[Position], bool],
                  on_signal: Callable[[ProviderSignal], None]) -> int:
        handle = next(self._handles)
        self._subscribers[handle] = (on_fix, on_signal)
        self.subscribe_count += 1
        return handle

    def unsubscribe(self, handle: int) -> None:
        self._subscribers.pop(handle, None)

    def set_accuracy_mode(self, mode: AccuracyMode) -> None:
        if mode != self.accuracy_mode:
            log.info("provider.accuracy_mode", mode=mode.value)
        self.accuracy_mode = mode

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def push(self, position: Position) -> bool:
        """Deliver a fix to every current subscriber; True if any of them accepted it."""
        with self._lock:
            results = [on_fix(position) for on_fix, _ in list(self._subscribers.values())]
        return any(results)

    def signal(self, signal: ProviderSignal) -> None:
        """Report a failure (no fix, permission revoked) to subscribers."""
        with self._lock:
            for _, on_signal in list(self._subscribers.values()):
                on_signal(signal)


class SimulatedWalkProvider(PushLocationProvider):
    """Walks north-east by a fixed step on every tick()."""

    def __init__(
        self,
        start_lat: float = WALK_START_LAT,
        start_lon: float = WALK_START_LON,
        step_degrees: float = WALK_STEP_DEGREES,
        interval: timedelta = timedelta(seconds=1),
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.start_lat = start_lat
        self.start_lon = start_lon
        self.step_degrees = step_degrees
        self.interval = interval
        self.counter = 0
        self._started_at = datetime.now(timezone.utc)

    def position_at(self, increment: int) -> Position:
        return Position(
            latitude=self.start_lat + increment * self.step_degrees,
            longitude=self.start_lon + increment * self.step_degrees,
            horizontal_accuracy_m=WALK_ACCURACY_M,
            timestamp=self._started_at + increment * self.interval,
        )

    def tick(self) -> Position:
        """Emit the next position of the walk and advance."""
        position = self.position_at(self.counter)
        self.counter += 1
        self.push(position)
        return position

    def rewind(self) -> None:
        self.counter = 0
