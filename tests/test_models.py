"""
Unit tests for Pydantic request models.
"""
import pytest
from datetime import datetime, timezone
from pydantic import ValidationError
from src.fogmap.location import PermissionState
from src.fogmap.models import BatchFixRequest, ExplorationState, Fix, PermissionUpdate, ViewportRequest


@pytest.mark.unit
class TestFixModel:
    """Test suite for the Fix model."""

    def test_valid_fix(self):
        fix = Fix(lat=34.0522, lon=-118.2437, accuracy_m=10.0)
        position = fix.to_position()
        assert position.latitude == 34.0522
        assert position.horizontal_accuracy_m == 10.0
        assert position.timestamp.tzinfo is not None

    def test_fix_with_timestamp(self):
        ts = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
        position = Fix(lat=0.0, lon=0.0, accuracy_m=5.0, timestamp=ts).to_position()
        assert position.timestamp == ts

    def test_negative_accuracy_is_accepted(self):
        """Test invalid-fix markers pass validation; the stream rejects them."""
        assert Fix(lat=0.0, lon=0.0, accuracy_m=-1.0).accuracy_m == -1.0

    @pytest.mark.parametrize("lat,lon", [(91.0, 0.0), (-91.0, 0.0), (0.0, 181.0), (0.0, -181.0)])
    def test_out_of_range(self, lat, lon):
        with pytest.raises(ValidationError):
            Fix(lat=lat, lon=lon, accuracy_m=5.0)

    def test_missing_accuracy(self):
        with pytest.raises(ValidationError):
            Fix(lat=0.0, lon=0.0)


@pytest.mark.unit
class TestBatchFixRequest:
    """Test suite for batch limits."""

    def test_empty_batch(self):
        with pytest.raises(ValidationError):
            BatchFixRequest(fixes=[])

    def test_too_many(self):
        with pytest.raises(ValidationError):
            BatchFixRequest(fixes=[{"lat": 0, "lon": 0, "accuracy_m": 5}] * 1001)

    def test_valid_batch(self):
        batch = BatchFixRequest(fixes=[{"lat": 0, "lon": 0, "accuracy_m": 5}] * 3)
        assert len(batch.fixes) == 3


@pytest.mark.unit
class TestOtherModels:
    """Test suite for viewport, permission and state models."""

    def test_viewport_request(self):
        viewport = ViewportRequest(center_lat=1.0, center_lon=2.0, lat_span=0.5, lon_span=0.25).to_viewport()
        assert (viewport.center_lat, viewport.center_lon, viewport.lat_span, viewport.lon_span) == (1.0, 2.0, 0.5, 0.25)

    def test_viewport_negative_span(self):
        with pytest.raises(ValidationError):
            ViewportRequest(center_lat=0, center_lon=0, lat_span=-1, lon_span=1)

    def test_permission_update(self):
        assert PermissionUpdate(permission="denied").permission == PermissionState.DENIED

    def test_permission_update_invalid(self):
        with pytest.raises(ValidationError):
            PermissionUpdate(permission="maybe")

    def test_exploration_state_defaults(self):
        state = ExplorationState()
        assert state.visited_cells == []
        assert state.total_distance_miles == 0.0

    def test_exploration_state_negative_distance(self):
        with pytest.raises(ValidationError):
            ExplorationState(total_distance_miles=-1.0)
