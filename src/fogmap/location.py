"""
Location stream: turns raw GPS fixes from a platform provider into accepted
positions, hiding permission, availability and accuracy churn.

State machine:

    IDLE --start()--> AWAITING_PERMISSION --granted--> ACTIVE
    ACTIVE --N consecutive rejections--> DEGRADED (relaxed accuracy, backoff retries)
    DEGRADED --retry budget exhausted--> FAILED
    any state with a live subscription --accepted fix--> ACTIVE (error cleared)
    any state --stop()--> IDLE

Errors are values published on the `errors` channel, never raised to the
provider. Transient rejections are only surfaced once the retry budget is
spent. Channel subscribers run after the stream lock is released, so a slow
subscriber never blocks the provider callbacks.
"""
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

import structlog

from . import metrics
from .channels import Channel
from .geo import is_valid_coordinate

log = structlog.get_logger()

# Accuracy filter (meters)
ACCURACY_THRESHOLD_M = 500.0
DEGRADED_ACCURACY_THRESHOLD_M = 1000.0

# Retry/backoff policy
DEGRADE_AFTER = 5          # Consecutive rejections before ACTIVE -> DEGRADED
MAX_RETRIES = 5            # Retries allowed in DEGRADED before FAILED
BACKOFF_INITIAL_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 30.0


@dataclass(frozen=True)
class Position:
    """A timestamped GPS fix. Negative accuracy means the platform marked it invalid."""
    latitude: float
    longitude: float
    horizontal_accuracy_m: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not is_valid_coordinate(self.latitude, self.longitude):
            raise ValueError(f"Invalid coordinate ({self.latitude}, {self.longitude})")
        if math.isnan(self.horizontal_accuracy_m):
            raise ValueError("Horizontal accuracy cannot be NaN")
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))


class PermissionState(str, Enum):
    NOT_DETERMINED = "not_determined"
    GRANTED = "granted"
    DENIED = "denied"
    RESTRICTED = "restricted"


class AccuracyMode(str, Enum):
    FINE = "fine"
    COARSE = "coarse"


class ProviderSignal(str, Enum):
    """Failures a provider reports instead of a fix."""
    LOCATION_UNKNOWN = "location_unknown"
    PERMISSION_DENIED = "permission_denied"
    PERMISSION_RESTRICTED = "permission_restricted"


class StreamState(str, Enum):
    IDLE = "idle"
    AWAITING_PERMISSION = "awaiting_permission"
    ACTIVE = "active"
    DEGRADED = "degraded"
    FAILED = "failed"


class LocationErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    PERMISSION_RESTRICTED = "permission_restricted"
    LOCATION_SERVICES_DISABLED = "location_services_disabled"
    LOCATION_UNAVAILABLE = "location_unavailable"
    ACCURACY_TOO_LOW = "accuracy_too_low"


ERROR_MESSAGES = {
    LocationErrorKind.LOCATION_SERVICES_DISABLED:
        "Location services are disabled on your device. Please enable them in Settings.",
    LocationErrorKind.PERMISSION_DENIED:
        "Location access has been denied. Please allow access in Settings.",
    LocationErrorKind.PERMISSION_RESTRICTED:
        "Location access is restricted, possibly due to parental controls.",
    LocationErrorKind.LOCATION_UNAVAILABLE:
        "Unable to determine your location at this time. "
        "Please ensure you have a clear view of the sky or try again later.",
}


@dataclass(frozen=True)
class LocationFailure:
    """An error surfaced to stream consumers."""
    kind: LocationErrorKind
    accuracy_m: Optional[float] = None

    @property
    def persistent(self) -> bool:
        """Needs the user to change OS settings; not cleared by retrying."""
        return self.kind in (LocationErrorKind.PERMISSION_DENIED, LocationErrorKind.PERMISSION_RESTRICTED)

    @property
    def message(self) -> str:
        if self.kind == LocationErrorKind.ACCURACY_TOO_LOW:
            if self.accuracy_m is None or self.accuracy_m < 0:
                return ("Your current location is invalid. "
                        "Please ensure you have a clear view of the sky and try again.")
            return (f"Your current location has low accuracy ({int(self.accuracy_m)}m). "
                    "Try moving to an open area for better GPS signal.")
        return ERROR_MESSAGES[self.kind]

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "persistent": self.persistent,
            "accuracy_m": self.accuracy_m,
        }


@dataclass(frozen=True)
class StreamStatus:
    """Published on every state change and whenever the surfaced error changes."""
    state: StreamState
    error: Optional[LocationFailure] = None


class LocationProvider(Protocol):
    """Platform location-services capability."""

    def services_enabled(self) -> bool: ...

    def request_permission(self) -> PermissionState: ...

    def subscribe(self, on_fix: Callable[[Position], bool],
                  on_signal: Callable[[ProviderSignal], None]) -> object: ...

    def unsubscribe(self, handle: object) -> None: ...

    def set_accuracy_mode(self, mode: AccuracyMode) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> object:
        """Run callback once after a delay; the returned handle has cancel()."""
        ...


class ThreadingScheduler:
    """Backoff timers on daemon threading.Timer threads."""

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay_seconds, callback)
        timer.daemon = True
        timer.start()
        return timer


def backoff_delay(retry: int, initial: float = BACKOFF_INITIAL_SECONDS, cap: float = BACKOFF_MAX_SECONDS) -> float:
    """
    Delay before the given retry (1-based).

    Examples:
        retry=1 -> 1s, 2 -> 2s, 3 -> 4s, ... capped at 30s
    """
    return min(initial * 2 ** max(retry - 1, 0), cap)


class LocationStream:
    """
    Accuracy-filtered position stream with a retry/backoff state machine.

    Channels:
        positions: accepted Position values
        errors: LocationFailure values, once per surfaced error
        status: StreamStatus on every state or error change
    """

    def __init__(
        self,
        provider: LocationProvider,
        scheduler: Scheduler = None,
        accuracy_threshold_m: float = ACCURACY_THRESHOLD_M,
        degraded_accuracy_threshold_m: float = DEGRADED_ACCURACY_THRESHOLD_M,
        degrade_after: int = DEGRADE_AFTER,
        max_retries: int = MAX_RETRIES,
        backoff_initial_seconds: float = BACKOFF_INITIAL_SECONDS,
        backoff_max_seconds: float = BACKOFF_MAX_SECONDS,
    ):
        if degrade_after < 1 or max_retries < 0:
            raise ValueError("degrade_after must be >= 1 and max_retries >= 0")
        self.provider = provider
        self.scheduler = scheduler or ThreadingScheduler()
        self.strict_threshold_m = accuracy_threshold_m
        self.relaxed_threshold_m = degraded_accuracy_threshold_m
        self.degrade_after = degrade_after
        self.max_retries = max_retries
        self.backoff_initial_seconds = backoff_initial_seconds
        self.backoff_max_seconds = backoff_max_seconds

        self.positions: Channel[Position] = Channel("positions")
        self.errors: Channel[LocationFailure] = Channel("errors")
        self.status: Channel[StreamStatus] = Channel("status")

        self.state = StreamState.IDLE
        self.error: Optional[LocationFailure] = None
        self.accuracy_threshold_m = accuracy_threshold_m
        self.consecutive_rejections = 0
        self.retry_count = 0
        self.last_position: Optional[Position] = None

        self._lock = threading.RLock()
        self._delivery_lock = threading.RLock()
        self._handle = None
        self._timer = None
        self._outbox: list[tuple[Channel, object]] = []

    @property
    def is_subscribed(self) -> bool:
        return self._handle is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Request permission if needed and begin receiving fixes."""
        with self._lock:
            if self._handle is None:
                if self.provider.services_enabled():
                    self._set_state(StreamState.AWAITING_PERMISSION)
                    self._apply_permission(self.provider.request_permission())
                else:
                    self._fail(LocationFailure(LocationErrorKind.LOCATION_SERVICES_DISABLED))
        self._flush()

    def permission_changed(self, permission: PermissionState) -> None:
        """Provider callback for authorization changes made outside the app."""
        with self._lock:
            if self.state != StreamState.IDLE:
                self._apply_permission(permission)
        self._flush()

    def stop(self) -> None:
        """Stop updates and cancel any pending retry. Idempotent."""
        with self._lock:
            self._cancel_timer()
            self._unsubscribe()
            self._reset_filter()
            if self.state != StreamState.IDLE:
                self._set_state(StreamState.IDLE)
        self._flush()

    # ------------------------------------------------------------------
    # Provider callbacks
    # ------------------------------------------------------------------

    def _on_fix(self, position: Position) -> bool:
        """Filter one fix; True if it was accepted."""
        with self._lock:
            accepted = self._filter_fix(position)
        self._flush()
        return accepted

    def _on_signal(self, signal: ProviderSignal) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle_signal(signal)
        self._flush()

    def _retry(self) -> None:
        with self._lock:
            self._timer = None
            if self._handle is None or self.state != StreamState.DEGRADED:
                return
            metrics.location_retries_total.inc()
            log.info("location.retry", retry=self.retry_count)
            self.provider.unsubscribe(self._handle)
            self._handle = self.provider.subscribe(self._on_fix, self._on_signal)

    # ------------------------------------------------------------------
    # State machine internals (lock held)
    # ------------------------------------------------------------------

    def _filter_fix(self, position: Position) -> bool:
        if self._handle is None:
            # Late delivery after stop() or during resubscription
            metrics.location_fixes_total.labels(outcome="ignored").inc()
            return False

        accuracy = position.horizontal_accuracy_m
        if accuracy < 0 or accuracy > self.accuracy_threshold_m:
            metrics.location_fixes_total.labels(outcome="rejected").inc()
            log.debug("location.fix_rejected", accuracy=accuracy,
                      threshold=self.accuracy_threshold_m, state=self.state.value)
            self._record_rejection(LocationFailure(LocationErrorKind.ACCURACY_TOO_LOW, accuracy_m=accuracy))
            return False

        metrics.location_fixes_total.labels(outcome="accepted").inc()
        self._recover()
        self.last_position = position
        self._emit(self.positions, position)
        return True

    def _handle_signal(self, signal: ProviderSignal) -> None:
        if signal == ProviderSignal.LOCATION_UNKNOWN:
            metrics.location_fixes_total.labels(outcome="missing").inc()
            self._record_rejection(LocationFailure(LocationErrorKind.LOCATION_UNAVAILABLE))
        elif signal == ProviderSignal.PERMISSION_RESTRICTED:
            self._apply_permission(PermissionState.RESTRICTED)
        else:
            self._apply_permission(PermissionState.DENIED)

    def _apply_permission(self, permission: PermissionState) -> None:
        if permission == PermissionState.GRANTED:
            if self._handle is not None:
                # Already receiving fixes; only an accepted fix moves the stream on
                return
            self._handle = self.provider.subscribe(self._on_fix, self._on_signal)
            self._cancel_timer()
            self._reset_filter()
            if self.error is not None and self.error.persistent:
                self.error = None
            self._set_state(StreamState.ACTIVE)
        elif permission == PermissionState.DENIED:
            self._cancel_timer()
            self._unsubscribe()
            self._fail(LocationFailure(LocationErrorKind.PERMISSION_DENIED))
        elif permission == PermissionState.RESTRICTED:
            self._cancel_timer()
            self._unsubscribe()
            self._fail(LocationFailure(LocationErrorKind.PERMISSION_RESTRICTED))
        else:
            log.info("location.awaiting_permission")

    def _record_rejection(self, failure: LocationFailure) -> None:
        self.consecutive_rejections += 1

        if self.state == StreamState.ACTIVE:
            if self.consecutive_rejections >= self.degrade_after:
                self._degrade()
        elif self.state == StreamState.DEGRADED:
            self.retry_count += 1
            if self.retry_count > self.max_retries:
                self._cancel_timer()
                self._fail(failure)
            else:
                self._schedule_retry()

    def _degrade(self) -> None:
        self.accuracy_threshold_m = self.relaxed_threshold_m
        self.provider.set_accuracy_mode(AccuracyMode.COARSE)
        self.retry_count = 1
        self._set_state(StreamState.DEGRADED)
        log.warning("location.degraded", rejections=self.consecutive_rejections,
                    threshold=self.accuracy_threshold_m)
        self._schedule_retry()

    def _schedule_retry(self) -> None:
        self._cancel_timer()
        delay = backoff_delay(self.retry_count, self.backoff_initial_seconds, self.backoff_max_seconds)
        self._timer = self.scheduler.schedule(delay, self._retry)

    def _reset_filter(self) -> None:
        """Strict threshold and fine accuracy, no rejections or retries counted."""
        relaxed = self.accuracy_threshold_m != self.strict_threshold_m
        self.consecutive_rejections = 0
        self.retry_count = 0
        self.accuracy_threshold_m = self.strict_threshold_m
        if relaxed:
            self.provider.set_accuracy_mode(AccuracyMode.FINE)

    def _recover(self) -> None:
        self._cancel_timer()
        self._reset_filter()

        error_cleared = self.error is not None
        self.error = None
        if self.state != StreamState.ACTIVE:
            log.info("location.recovered", from_state=self.state.value)
            self._set_state(StreamState.ACTIVE)
        elif error_cleared:
            self._emit(self.status, StreamStatus(self.state, None))

    def _fail(self, failure: LocationFailure) -> None:
        self.error = failure
        metrics.location_errors_total.labels(kind=failure.kind.value).inc()
        log.warning("location.error", kind=failure.kind.value, persistent=failure.persistent)
        self._set_state(StreamState.FAILED, publish=False)
        self._emit(self.errors, failure)
        self._emit(self.status, StreamStatus(self.state, failure))

    def _set_state(self, new_state: StreamState, publish: bool = True) -> None:
        old_state = self.state
        self.state = new_state
        if old_state != new_state:
            metrics.location_state_transitions_total.labels(
                from_state=old_state.value, to_state=new_state.value
            ).inc()
            log.info("location.state_changed", from_state=old_state.value, to_state=new_state.value)
        if publish:
            self._emit(self.status, StreamStatus(self.state, self.error))

    def _emit(self, channel: Channel, value: object) -> None:
        self._outbox.append((channel, value))

    def _flush(self) -> None:
        """
        Deliver queued channel values in order with the state lock released.

        Deliveries are serialized, so once stop() has flushed no position is
        still on its way to a subscriber.
        """
        with self._delivery_lock:
            with self._lock:
                outbox, self._outbox = self._outbox, []
            for channel, value in outbox:
                channel.publish(value)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _unsubscribe(self) -> None:
        if self._handle is not None:
            self.provider.unsubscribe(self._handle)
            self._handle = None
