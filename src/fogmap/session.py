"""
Exploration session: the single owner of mutable exploration state.

Wires the data flow

    LocationStream.positions -> ExplorationGrid.mark_visited
                             -> ExplorationMetrics.record_position
                             -> ExplorationMetrics.record_visited_cell_count_change
                             -> progress channel (+ optional Redis event)

and serves overlays for the current viewport. Every mutation runs under one
lock, so a position delivered on a provider thread never interleaves with a
reset or a restore coming from the API.
"""
import threading
import uuid
from typing import Optional

import redis
import structlog
from redis.exceptions import RedisError

from . import events
from . import metrics
from .channels import Channel
from .config import Settings
from .fog import FogOverlay, FogRenderer, FogStyle, LodThresholds
from .grid import ExplorationGrid
from .location import LocationFailure, LocationProvider, LocationStream, Position, Scheduler
from .progress import ExplorationMetrics, ProgressSnapshot, validate_distance
from .viewport import DEFAULT_VIEWPORT, Viewport

log = structlog.get_logger()


class ExplorationSession:
    """One user's exploration state plus the location stream feeding it."""

    def __init__(
        self,
        provider: LocationProvider,
        settings: Settings = None,
        scheduler: Scheduler = None,
        redis_client: Optional[redis.Redis] = None,
        session_id: str = None,
    ):
        self.settings = settings or Settings()
        self.session_id = session_id or uuid.uuid4().hex
        self.redis_client = redis_client

        self.grid = ExplorationGrid(max_cells=self.settings.max_cells)
        self.progress = ExplorationMetrics(cells_per_level=self.settings.cells_per_level)
        self.renderer = FogRenderer(
            padding_cap=self.settings.padding_cap_degrees,
            thresholds=LodThresholds(
                reveal_below=self.settings.reveal_below_degrees,
                fog_above=self.settings.fog_above_degrees,
            ),
            style=FogStyle(opacity=self.settings.fog_opacity),
        )
        self.stream = LocationStream(
            provider,
            scheduler=scheduler,
            accuracy_threshold_m=self.settings.accuracy_threshold_m,
            degraded_accuracy_threshold_m=self.settings.degraded_accuracy_threshold_m,
            degrade_after=self.settings.degrade_after,
            max_retries=self.settings.max_retries,
            backoff_initial_seconds=self.settings.backoff_initial_seconds,
            backoff_max_seconds=self.settings.backoff_max_seconds,
        )

        self.progress_updates: Channel[ProgressSnapshot] = Channel("progress")
        self.viewport = DEFAULT_VIEWPORT
        self.follow_user = True
        self.user_location: Optional[Position] = None

        self._lock = threading.RLock()
        self._subscriptions = [
            self.stream.positions.subscribe(self.handle_position),
            self.stream.errors.subscribe(self._handle_error),
        ]

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.stream.start()

    def stop(self) -> None:
        self.stream.stop()

    def close(self) -> None:
        """Stop tracking and detach from the stream's channels."""
        self.stream.stop()
        for subscription in self._subscriptions:
            subscription.cancel()

    def handle_position(self, position: Position) -> ProgressSnapshot:
        """
        Apply one accepted position to grid and progress.

        Returns:
            Progress after the update
        """
        with self._lock:
            new_cells = self.grid.mark_visited(position)
            self.progress.record_position(position)
            leveled_up = self.progress.record_visited_cell_count_change(
                len(self.grid), self.grid.explored_area_km2
            )
            self.user_location = position
            if self.follow_user:
                self.viewport = self.viewport.centered_on(position.latitude, position.longitude)
            snapshot = self.progress.snapshot()

        metrics.cells_marked_total.inc(new_cells)
        metrics.visited_cells.set(snapshot.visited_cells)
        if leveled_up:
            log.info("progress.level_up", session_id=self.session_id, level=snapshot.level)

        self._publish(
            events.publish_position_event,
            lat=position.latitude,
            lon=position.longitude,
            accuracy_m=position.horizontal_accuracy_m,
            new_cells=new_cells,
            visited_cells=snapshot.visited_cells,
            total_distance_miles=snapshot.total_distance_miles,
        )
        if leveled_up:
            self._publish(events.publish_level_up_event, level=snapshot.level,
                          visited_cells=snapshot.visited_cells)

        self.progress_updates.publish(snapshot)
        return snapshot

    def _handle_error(self, failure: LocationFailure) -> None:
        self._publish(events.publish_location_error_event, kind=failure.kind.value,
                      message=failure.message, persistent=failure.persistent)

    # ------------------------------------------------------------------
    # Viewport and overlay
    # ------------------------------------------------------------------

    def set_viewport(self, viewport: Viewport) -> Viewport:
        """Store a user pan/zoom, clamped to the maximum span."""
        clamped = viewport.clamp(max_span=self.settings.max_span_degrees)
        with self._lock:
            self.viewport = clamped
        return clamped

    def center_on_user(self) -> Optional[Viewport]:
        """Re-center on the last accepted position, keeping the zoom."""
        with self._lock:
            if self.user_location is None:
                return None
            self.viewport = self.viewport.centered_on(
                self.user_location.latitude, self.user_location.longitude
            )
            return self.viewport

    def toggle_follow_user(self) -> bool:
        with self._lock:
            self.follow_user = not self.follow_user
            if self.follow_user:
                self.center_on_user()
            return self.follow_user

    def build_overlay(self, viewport: Viewport = None) -> FogOverlay:
        """Fog overlay for the given (clamped) or current viewport."""
        if viewport is not None:
            viewport = viewport.clamp(max_span=self.settings.max_span_degrees)
        with self._lock:
            return self.renderer.build_overlay(viewport or self.viewport, self.grid)

    def visible_percent(self) -> float:
        return self.viewport.visible_percent()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self.progress.snapshot()

    def serialize_state(self) -> dict:
        """Durable state for a persistence collaborator."""
        with self._lock:
            return {
                "visited_cells": self.grid.serialize(),
                "total_distance_miles": self.progress.total_distance_miles,
            }

    def restore_state(self, state: dict) -> ProgressSnapshot:
        """
        Replace grid and distance with a serialized state.

        Raises:
            ValueError: If the payload is malformed
        """
        try:
            cells = state["visited_cells"]
            distance = validate_distance(state["total_distance_miles"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed exploration state: {e}") from e

        with self._lock:
            try:
                self.grid.restore(cells)
            except TypeError as e:
                raise ValueError(f"Malformed visited cells: {e}") from e
            self.progress.restore(distance, len(self.grid), self.grid.explored_area_km2)
            snapshot = self.progress.snapshot()

        metrics.visited_cells.set(snapshot.visited_cells)
        log.info("session.restored", session_id=self.session_id, cells=snapshot.visited_cells)
        self.progress_updates.publish(snapshot)
        return snapshot

    def reset(self) -> ProgressSnapshot:
        """
        Forget all exploration: cells, distance, level, last position.

        Location tracking keeps running.
        """
        with self._lock:
            self.grid.reset()
            self.progress.reset()
            self.viewport = DEFAULT_VIEWPORT
            if self.user_location is not None:
                self.viewport = self.viewport.centered_on(
                    self.user_location.latitude, self.user_location.longitude
                )
            snapshot = self.progress.snapshot()

        metrics.visited_cells.set(0)
        log.info("session.reset", session_id=self.session_id)
        self._publish(events.publish_reset_event)
        self.progress_updates.publish(snapshot)
        return snapshot

    def _publish(self, publisher, **fields) -> None:
        """Send an event to Redis if enabled; failures never reach the caller."""
        if self.redis_client is None or not self.settings.publish_events:
            return
        try:
            publisher(redis_client=self.redis_client, session_id=self.session_id, **fields)
            metrics.redis_operations_total.labels(operation="xadd", status="success").inc()
        except RedisError as e:
            metrics.redis_operations_total.labels(operation="xadd", status="error").inc()
            log.warning("events.publish_failed", session_id=self.session_id, error=str(e))
