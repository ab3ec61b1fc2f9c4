"""
Unit tests for geodesic helpers.
"""
import math
import pytest
from src.fogmap.geo import (
    haversine_m,
    haversine_miles,
    meters_to_miles,
    lat_lon_box_area_km2,
    is_valid_coordinate,
    EARTH_RADIUS_M,
    METERS_PER_MILE,
    EARTH_SURFACE_KM2,
)


@pytest.mark.unit
class TestHaversine:
    """Test suite for great-circle distance."""

    def test_same_point_is_zero(self):
        """Test distance from a point to itself."""
        assert haversine_m(34.0522, -118.2437, 34.0522, -118.2437) == 0.0

    def test_one_degree_of_latitude(self):
        """Test one degree along a meridian is R * pi / 180."""
        expected = EARTH_RADIUS_M * math.pi / 180
        assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, rel=1e-12)

    def test_symmetric(self):
        """Test distance does not depend on direction."""
        a = haversine_m(40.7128, -74.0060, 51.5074, -0.1278)
        b = haversine_m(51.5074, -0.1278, 40.7128, -74.0060)
        assert a == pytest.approx(b)

    def test_new_york_to_london(self):
        """Test a well-known long distance (~5570 km)."""
        d = haversine_m(40.7128, -74.0060, 51.5074, -0.1278)
        assert 5_500_000 < d < 5_650_000

    def test_antimeridian_crossing(self):
        """Test points on both sides of the 180th meridian are close."""
        d = haversine_m(0.0, 179.999, 0.0, -179.999)
        assert d < 300

    def test_miles_conversion(self):
        """Test the miles variant divides by 1609.34."""
        meters = haversine_m(34.0, -118.0, 34.1, -118.1)
        assert haversine_miles(34.0, -118.0, 34.1, -118.1) == pytest.approx(meters / METERS_PER_MILE)


@pytest.mark.unit
class TestUnitConversion:
    """Test suite for meter/mile conversion."""

    def test_one_mile(self):
        """Test 1609.34 m is one mile."""
        assert meters_to_miles(1609.34) == pytest.approx(1.0)

    def test_zero(self):
        assert meters_to_miles(0.0) == 0.0


@pytest.mark.unit
class TestBoxArea:
    """Test suite for spherical box area."""

    def test_whole_sphere(self):
        """Test the full lat/lon range covers 4*pi*R^2."""
        area = lat_lon_box_area_km2(-90, -180, 90, 180)
        assert area == pytest.approx(4 * math.pi * (EARTH_RADIUS_M / 1000) ** 2)
        assert area == pytest.approx(EARTH_SURFACE_KM2, rel=0.001)

    def test_box_shrinks_toward_pole(self):
        """Test the same angular box is smaller at high latitude."""
        equator = lat_lon_box_area_km2(0.0, 0.0, 0.003, 0.003)
        arctic = lat_lon_box_area_km2(60.0, 0.0, 60.003, 0.003)
        assert arctic == pytest.approx(equator * 0.5, rel=0.001)

    def test_area_is_positive_for_reversed_box(self):
        """Test area does not go negative when edges are swapped."""
        assert lat_lon_box_area_km2(1.0, 1.0, 0.0, 0.0) > 0


@pytest.mark.unit
class TestCoordinateValidation:
    """Test suite for is_valid_coordinate."""

    @pytest.mark.parametrize("lat,lon", [(0, 0), (90, 180), (-90, -180), (34.0522, -118.2437)])
    def test_valid(self, lat, lon):
        assert is_valid_coordinate(lat, lon)

    @pytest.mark.parametrize("lat,lon", [(91, 0), (0, 181), (float("nan"), 0), (0, float("inf"))])
    def test_invalid(self, lat, lon):
        assert not is_valid_coordinate(lat, lon)
