"""
Map viewport (visible extent) and the pure functions derived from it.
"""
import math
from dataclasses import dataclass, replace

from .geo import EARTH_SURFACE_KM2, KM_PER_DEGREE, is_valid_coordinate

# Most zoomed-out span the renderer will accept (degrees)
MAX_SPAN_DEGREES = 75.0

# Overlay padding never exceeds this many degrees, whatever the zoom
PADDING_CAP_DEGREES = 5.0


@dataclass(frozen=True)
class Bounds:
    """Axis-aligned lat/lon box."""
    south: float
    west: float
    north: float
    east: float


@dataclass(frozen=True)
class Viewport:
    """
    Visible map extent: center coordinate plus angular span.

    Spans are full widths in degrees (the map SDK's latitudeDelta /
    longitudeDelta), not half-widths.
    """
    center_lat: float
    center_lon: float
    lat_span: float
    lon_span: float

    def __post_init__(self):
        if not is_valid_coordinate(self.center_lat, self.center_lon):
            raise ValueError(f"Invalid viewport center ({self.center_lat}, {self.center_lon})")
        if not (math.isfinite(self.lat_span) and math.isfinite(self.lon_span)):
            raise ValueError("Viewport span must be finite")
        if self.lat_span < 0 or self.lon_span < 0:
            raise ValueError("Viewport span cannot be negative")

    @property
    def max_span(self) -> float:
        return max(self.lat_span, self.lon_span)

    def clamp(self, max_span: float = MAX_SPAN_DEGREES, min_span: float = 0.0) -> "Viewport":
        """
        Limit each span dimension to [min_span, max_span], keeping the center.

        Each scalar is compared on its own; a clamp on one axis never hides a
        change on the other.
        """
        lat_span = min(max(self.lat_span, min_span), max_span)
        lon_span = min(max(self.lon_span, min_span), max_span)
        if lat_span == self.lat_span and lon_span == self.lon_span:
            return self
        return replace(self, lat_span=lat_span, lon_span=lon_span)

    def centered_on(self, lat: float, lon: float) -> "Viewport":
        """Same span, new center (used when following the user)."""
        return replace(self, center_lat=lat, center_lon=lon)

    def padding(self, padding_cap: float = PADDING_CAP_DEGREES) -> float:
        """Overlay padding: half the larger span, capped."""
        return min(self.max_span * 0.5, padding_cap)

    def bounds(self) -> Bounds:
        """Unpadded visible box."""
        return self.padded_bounds(padding=0.0)

    def padded_bounds(self, padding_cap: float = PADDING_CAP_DEGREES, padding: float = None) -> Bounds:
        """
        Visible box grown by the overlay padding on every side.

        Args:
            padding_cap: Cap applied when padding is derived from the span
            padding: Explicit padding in degrees (overrides the derived one)
        """
        if padding is None:
            padding = self.padding(padding_cap)
        half_lat = self.lat_span / 2
        half_lon = self.lon_span / 2
        return Bounds(
            south=self.center_lat - half_lat - padding,
            west=self.center_lon - half_lon - padding,
            north=self.center_lat + half_lat + padding,
            east=self.center_lon + half_lon + padding,
        )

    def visible_percent(self) -> float:
        """
        Share of the Earth's surface covered by this viewport, in percent.

        This is the "percent of world" figure shown while panning: a pure
        function of the viewport, unrelated to what has been explored.
        """
        correction = math.cos(math.radians(self.center_lat))
        visible_km2 = self.lat_span * self.lon_span * KM_PER_DEGREE * KM_PER_DEGREE * correction
        return min(max(visible_km2, 0.0) / EARTH_SURFACE_KM2 * 100, 100.0)


# Downtown Los Angeles, the map's starting view
DEFAULT_VIEWPORT = Viewport(center_lat=34.0522, center_lon=-118.2437, lat_span=0.0922, lon_span=0.0421)
