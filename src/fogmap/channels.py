"""
Observer registration for engine events (positions, progress, errors).

Consumers subscribe a callback and get back a Subscription; cancelling it
guarantees no further deliveries. A failing subscriber is logged and does
not stop delivery to the others.
"""
import threading
from typing import Callable, Generic, TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")


class Subscription:
    """Handle returned by Channel.subscribe()."""

    def __init__(self, channel: "Channel", callback: Callable):
        self._channel = channel
        self._callback = callback
        self.active = True

    def cancel(self) -> None:
        """Stop deliveries to this subscriber. Idempotent."""
        if self.active:
            self.active = False
            self._channel._remove(self)


class Channel(Generic[T]):
    """Synchronous fan-out of values to registered callbacks."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription:
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def publish(self, value: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            if not subscription.active:
                continue
            try:
                subscription._callback(value)
            except Exception as e:
                log.error("channel.subscriber_failed", channel=self.name, error=str(e))
