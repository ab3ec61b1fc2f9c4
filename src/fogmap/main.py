"""
Fog Explorer API
FastAPI application exposing an exploration session: devices push GPS fixes,
the map client reports its viewport and pulls the fog overlay and progress.
"""
from fastapi import Depends, FastAPI, HTTPException, Request, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
import time
from typing import Optional

import structlog

from src.fogmap import metrics
from src.fogmap import persistence
from src.fogmap.config import Settings
from src.fogmap.database import create_tables, is_database_configured
from src.fogmap.location import ProviderSignal
from src.fogmap.logging_setup import configure_logging
from src.fogmap.models import BatchFixRequest, ExplorationState, Fix, PermissionUpdate, ViewportRequest
from src.fogmap.providers import PushLocationProvider
from src.fogmap.redis_client import get_redis_client, redis_status
from src.fogmap.session import ExplorationSession
from src.fogmap.viewport import Viewport

log = structlog.get_logger()


def build_default_session(settings: Settings = None) -> ExplorationSession:
    """Session fed by HTTP-pushed fixes, configured from the environment."""
    settings = settings or Settings.from_env()
    redis_client = get_redis_client() if settings.publish_events else None
    return ExplorationSession(PushLocationProvider(), settings=settings, redis_client=redis_client)


def get_session(request: Request) -> ExplorationSession:
    return request.app.state.session


def _observe(endpoint: str, start_time: float, status: str = "success") -> None:
    metrics.http_requests_total.labels(endpoint=endpoint, status=status).inc()
    metrics.request_duration_seconds.labels(endpoint=endpoint).observe(time.time() - start_time)


def _stream_status(session: ExplorationSession) -> dict:
    stream = session.stream
    return {
        "state": stream.state.value,
        "error": stream.error.to_dict() if stream.error else None,
        "accuracy_threshold_m": stream.accuracy_threshold_m,
        "consecutive_rejections": stream.consecutive_rejections,
        "retry_count": stream.retry_count,
    }


def _push_provider(session: ExplorationSession) -> PushLocationProvider:
    provider = session.stream.provider
    if not isinstance(provider, PushLocationProvider):
        raise HTTPException(status_code=409, detail="Session is not fed by pushed fixes")
    return provider


def _viewport_payload(session: ExplorationSession, viewport: Viewport) -> dict:
    return {
        "center_lat": viewport.center_lat,
        "center_lon": viewport.center_lon,
        "lat_span": viewport.lat_span,
        "lon_span": viewport.lon_span,
        "visible_percent": viewport.visible_percent(),
        "follow_user": session.follow_user,
    }


def create_app(session: ExplorationSession = None, settings: Settings = None) -> FastAPI:
    """
    Build the API around an exploration session.

    Args:
        session: Session to expose; a push-fed one is built from the
            environment when omitted
        settings: Settings for the default session (ignored if session given)
    """
    settings = settings or (session.settings if session else Settings.from_env())
    configure_logging(settings.log_level, settings.log_json)

    app = FastAPI(
        title="Fog Explorer",
        description="Fog-of-war exploration engine: GPS fixes reveal grid cells under a fog overlay",
        version="1.0.0"
    )
    app.state.session = session or build_default_session(settings)
    if is_database_configured():
        create_tables()

    @app.get("/metrics")
    def get_metrics():
        """
        Prometheus metrics endpoint.

        Returns:
            Response: Prometheus-formatted metrics
        """
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health")
    def health(session: ExplorationSession = Depends(get_session)):
        """
        Health check endpoint.

        Returns:
            dict: API status, Redis event stream status, database status
        """
        if session.redis_client is None:
            redis_state = "disabled"
        else:
            redis_state = redis_status(session.redis_client)

        return {
            "status": "healthy",
            "redis": redis_state,
            "database": "configured" if is_database_configured() else "disabled",
            "tracking": session.stream.state.value,
        }

    @app.post("/v1/tracking/start")
    def start_tracking(session: ExplorationSession = Depends(get_session)):
        """
        Start location tracking.

        Permission problems are not HTTP errors: they show up in the returned
        status (state "failed" with a persistent error).
        """
        start_time = time.time()
        session.start()
        _observe("start_tracking", start_time)
        return _stream_status(session)

    @app.post("/v1/tracking/stop")
    def stop_tracking(session: ExplorationSession = Depends(get_session)):
        """Stop location tracking. Safe to call repeatedly."""
        session.stop()
        return _stream_status(session)

    @app.get("/v1/tracking/status")
    def tracking_status(session: ExplorationSession = Depends(get_session)):
        """Current location stream state and surfaced error, if any."""
        return _stream_status(session)

    @app.post("/v1/tracking/permission")
    def update_permission(update: PermissionUpdate, session: ExplorationSession = Depends(get_session)):
        """Report an authorization change made in the OS settings."""
        provider = _push_provider(session)
        provider.permission = update.permission
        session.stream.permission_changed(update.permission)
        return _stream_status(session)

    @app.post("/v1/fixes")
    def create_fix(fix: Fix, session: ExplorationSession = Depends(get_session)):
        """
        Deliver one raw GPS fix.

        Process:
        1. Check that tracking is running
        2. Hand the fix to the location stream (accuracy filter + backoff)
        3. If accepted, the session marks the 3x3 cell block and updates progress

        Returns:
            dict: Whether the fix was accepted, stream status, progress

        Raises:
            HTTPException 409: If tracking is not running
            HTTPException 400: If the fix cannot be turned into a position
        """
        start_time = time.time()
        provider = _push_provider(session)
        if not session.stream.is_subscribed:
            _observe("create_fix", start_time, status="not_tracking")
            raise HTTPException(status_code=409, detail="Tracking is not active. POST /v1/tracking/start first.")

        try:
            position = fix.to_position()
        except ValueError as e:
            _observe("create_fix", start_time, status="invalid")
            raise HTTPException(status_code=400, detail=str(e))

        accepted = provider.push(position)
        _observe("create_fix", start_time)

        return {
            "accepted": accepted,
            "tracking": _stream_status(session),
            "progress": session.snapshot().to_dict(),
        }

    @app.post("/v1/fixes/batch")
    def create_fixes_batch(batch: BatchFixRequest, session: ExplorationSession = Depends(get_session)):
        """
        Deliver several fixes in order, as if they arrived one by one.

        Returns:
            dict: Accepted/rejected counts and progress after the batch
        """
        start_time = time.time()
        provider = _push_provider(session)
        if not session.stream.is_subscribed:
            _observe("create_fixes_batch", start_time, status="not_tracking")
            raise HTTPException(status_code=409, detail="Tracking is not active. POST /v1/tracking/start first.")

        try:
            positions = [fix.to_position() for fix in batch.fixes]
        except ValueError as e:
            _observe("create_fixes_batch", start_time, status="invalid")
            raise HTTPException(status_code=400, detail=str(e))

        accepted = sum(1 for position in positions if provider.push(position))
        _observe("create_fixes_batch", start_time)

        return {
            "total_fixes": len(positions),
            "accepted": accepted,
            "rejected": len(positions) - accepted,
            "tracking": _stream_status(session),
            "progress": session.snapshot().to_dict(),
            "processing_time_ms": round((time.time() - start_time) * 1000, 2)
        }

    @app.post("/v1/fixes/unavailable")
    def report_unavailable(session: ExplorationSession = Depends(get_session)):
        """Report that the device could not get a fix (counts toward backoff)."""
        provider = _push_provider(session)
        provider.signal(ProviderSignal.LOCATION_UNKNOWN)
        return _stream_status(session)

    @app.put("/v1/viewport")
    def update_viewport(request: ViewportRequest, session: ExplorationSession = Depends(get_session)):
        """
        Store the client's pan/zoom.

        The span is clamped to the maximum zoom-out; the client should adopt
        the returned viewport.
        """
        viewport = session.set_viewport(request.to_viewport())
        return _viewport_payload(session, viewport)

    @app.get("/v1/viewport")
    def current_viewport(session: ExplorationSession = Depends(get_session)):
        """Current viewport and the share of the world it shows."""
        return _viewport_payload(session, session.viewport)

    @app.post("/v1/viewport/follow")
    def toggle_follow(session: ExplorationSession = Depends(get_session)):
        """Toggle following the user's location."""
        session.toggle_follow_user()
        return _viewport_payload(session, session.viewport)

    @app.get("/v1/overlay")
    def overlay(
        center_lat: Optional[float] = None,
        center_lon: Optional[float] = None,
        lat_span: Optional[float] = None,
        lon_span: Optional[float] = None,
        session: ExplorationSession = Depends(get_session),
    ):
        """
        Fog overlay geometry for a viewport.

        Uses the stored viewport unless all four viewport parameters are given.

        Returns:
            dict: GeoJSON polygon (exterior + holes), LOD mode, fog style
        """
        start_time = time.time()
        params = (center_lat, center_lon, lat_span, lon_span)
        viewport = None
        if any(p is not None for p in params):
            if any(p is None for p in params):
                raise HTTPException(
                    status_code=400,
                    detail="Provide all of center_lat, center_lon, lat_span, lon_span or none"
                )
            try:
                viewport = Viewport(center_lat, center_lon, lat_span, lon_span)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        fog = session.build_overlay(viewport)
        _observe("overlay", start_time)

        style = session.renderer.style
        return {
            "lod": fog.lod.value,
            "hole_count": len(fog.holes),
            "geometry": fog.to_geojson(),
            "style": {
                "color": style.color,
                "fill_opacity": style.opacity,
                "border_opacity": style.border_opacity,
            },
        }

    @app.get("/v1/progress")
    def progress(session: ExplorationSession = Depends(get_session)):
        """Distance, level, cells until next level and percent explored."""
        data = session.snapshot().to_dict()
        data["visible_percent"] = session.visible_percent()
        return data

    @app.get("/v1/state")
    def get_state(session: ExplorationSession = Depends(get_session)):
        """Serialized exploration state."""
        return session.serialize_state()

    @app.put("/v1/state")
    def put_state(state: ExplorationState, session: ExplorationSession = Depends(get_session)):
        """Replace the exploration state with a serialized one."""
        try:
            snapshot = session.restore_state(state.model_dump())
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return snapshot.to_dict()

    @app.post("/v1/reset")
    def reset(session: ExplorationSession = Depends(get_session)):
        """Clear all exploration progress. Tracking keeps running."""
        return session.reset().to_dict()

    @app.post("/v1/snapshots/{session_id}")
    def save_snapshot(session_id: str, session: ExplorationSession = Depends(get_session)):
        """
        Save the current state under a session id.

        Raises:
            HTTPException 503: If no database is configured or the save failed
        """
        if not is_database_configured():
            raise HTTPException(status_code=503, detail="Snapshot storage is not configured")
        state = session.serialize_state()
        if not persistence.save_snapshot(session_id, state):
            raise HTTPException(status_code=503, detail="Failed to save snapshot")
        return {"session_id": session_id, "visited_cells": len(state["visited_cells"])}

    @app.post("/v1/snapshots/{session_id}/restore")
    def restore_snapshot(session_id: str, session: ExplorationSession = Depends(get_session)):
        """
        Load a saved state into the session.

        Raises:
            HTTPException 503: If no database is configured
            HTTPException 404: If no snapshot exists for the id
            HTTPException 422: If the stored snapshot cannot be loaded
        """
        if not is_database_configured():
            raise HTTPException(status_code=503, detail="Snapshot storage is not configured")
        state = persistence.load_snapshot(session_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"No snapshot for session {session_id}")
        try:
            snapshot = session.restore_state(state)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Snapshot {session_id} is corrupt: {e}")
        return snapshot.to_dict()

    @app.delete("/v1/snapshots/{session_id}")
    def delete_snapshot(session_id: str):
        """
        Remove a saved state.

        Raises:
            HTTPException 503: If no database is configured
            HTTPException 404: If no snapshot exists for the id
        """
        if not is_database_configured():
            raise HTTPException(status_code=503, detail="Snapshot storage is not configured")
        if not persistence.delete_snapshot(session_id):
            raise HTTPException(status_code=404, detail=f"No snapshot for session {session_id}")
        return {"session_id": session_id, "deleted": True}

    return app


app = create_app()
