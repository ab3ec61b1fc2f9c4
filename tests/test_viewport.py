"""
Unit tests for the viewport value type.
"""
import pytest
from src.fogmap.viewport import DEFAULT_VIEWPORT, MAX_SPAN_DEGREES, Viewport


@pytest.mark.unit
class TestViewportValidation:
    """Test suite for construction checks."""

    def test_valid_viewport(self):
        viewport = Viewport(34.0522, -118.2437, 0.0922, 0.0421)
        assert viewport.max_span == 0.0922

    @pytest.mark.parametrize("args", [
        (91.0, 0.0, 1.0, 1.0),
        (0.0, -181.0, 1.0, 1.0),
        (0.0, 0.0, -1.0, 1.0),
        (0.0, 0.0, 1.0, float("inf")),
    ])
    def test_invalid_viewport(self, args):
        """Test bad centers and spans are rejected."""
        with pytest.raises(ValueError):
            Viewport(*args)

    def test_viewport_is_immutable(self):
        with pytest.raises(AttributeError):
            DEFAULT_VIEWPORT.lat_span = 1.0


@pytest.mark.unit
class TestClamp:
    """Test suite for Viewport.clamp."""

    def test_clamp_large_span(self):
        """Test a 200x200 viewport clamps to 75x75 around the same center."""
        clamped = Viewport(10.0, 20.0, 200.0, 200.0).clamp()
        assert clamped == Viewport(10.0, 20.0, MAX_SPAN_DEGREES, MAX_SPAN_DEGREES)

    def test_clamp_one_axis(self):
        """Test only the oversized axis changes."""
        clamped = Viewport(0.0, 0.0, 10.0, 120.0).clamp()
        assert clamped.lat_span == 10.0
        assert clamped.lon_span == 75.0

    def test_clamp_noop_returns_same_object(self):
        viewport = Viewport(0.0, 0.0, 1.0, 1.0)
        assert viewport.clamp() is viewport

    def test_clamp_min_span(self):
        clamped = Viewport(0.0, 0.0, 0.0, 0.5).clamp(min_span=0.001)
        assert clamped.lat_span == 0.001
        assert clamped.lon_span == 0.5

    def test_centered_on_keeps_span(self):
        moved = DEFAULT_VIEWPORT.centered_on(40.0, -74.0)
        assert (moved.center_lat, moved.center_lon) == (40.0, -74.0)
        assert (moved.lat_span, moved.lon_span) == (DEFAULT_VIEWPORT.lat_span, DEFAULT_VIEWPORT.lon_span)


@pytest.mark.unit
class TestPadding:
    """Test suite for overlay padding."""

    def test_padding_is_half_the_larger_span(self):
        assert Viewport(0.0, 0.0, 0.2, 0.1).padding() == pytest.approx(0.1)

    def test_padding_is_capped(self):
        """Test padding never exceeds the cap at wide zoom."""
        assert Viewport(0.0, 0.0, 60.0, 60.0).padding() == 5.0

    def test_padded_bounds(self):
        bounds = Viewport(10.0, 20.0, 2.0, 4.0).padded_bounds()
        assert bounds.south == pytest.approx(10.0 - 1.0 - 2.0)
        assert bounds.north == pytest.approx(10.0 + 1.0 + 2.0)
        assert bounds.west == pytest.approx(20.0 - 2.0 - 2.0)
        assert bounds.east == pytest.approx(20.0 + 2.0 + 2.0)

    def test_unpadded_bounds(self):
        bounds = Viewport(10.0, 20.0, 2.0, 4.0).bounds()
        assert (bounds.south, bounds.west, bounds.north, bounds.east) == (9.0, 18.0, 11.0, 22.0)


@pytest.mark.unit
class TestVisiblePercent:
    """Test suite for the share of the world shown."""

    def test_default_viewport_is_tiny(self):
        percent = DEFAULT_VIEWPORT.visible_percent()
        assert 0 < percent < 0.0001

    def test_equator_one_degree(self):
        """Test 1x1 degree at the equator is 111.32^2 km2 of 510.1M km2."""
        expected = 111.32 * 111.32 / 510_100_000 * 100
        assert Viewport(0.0, 0.0, 1.0, 1.0).visible_percent() == pytest.approx(expected)

    def test_capped_at_100(self):
        assert Viewport(0.0, 0.0, 75.0, 75.0).visible_percent() <= 100.0

    def test_zero_span(self):
        assert Viewport(0.0, 0.0, 0.0, 0.0).visible_percent() == 0.0
