"""
Fog overlay geometry.

The overlay is one polygon: an outer ring covering the viewport plus padding,
with an interior ring (hole) for every visited cell inside it. The map widget
fills the polygon with the fog style, so holes show the base map through.

Level of detail (LOD), by the larger span of the viewport:
- below REVEAL_BELOW_DEGREES: a single marker hole covering the visited cells
  in view (the 3x3 mark around the user makes that area uniformly explored)
- above FOG_ABOVE_DEGREES: no holes at all, the view renders fully fogged
- in between: one square hole per visited cell
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import structlog

from . import metrics
from .grid import ExplorationGrid, GridCell
from .viewport import PADDING_CAP_DEGREES, Bounds, Viewport

log = structlog.get_logger()

# LOD breakpoints (degrees of the larger viewport span)
REVEAL_BELOW_DEGREES = 0.003   # Narrower than one grid cell
FOG_ABOVE_DEGREES = 20.0       # Continent scale, cells are sub-pixel

DEFAULT_FOG_OPACITY = 0.35

Coordinate = tuple[float, float]  # (lat, lon)
Ring = list[Coordinate]


class LevelOfDetail(str, Enum):
    REVEALED = "revealed"
    CELLS = "cells"
    FOGGED = "fogged"


@dataclass(frozen=True)
class LodThresholds:
    """Span breakpoints (degrees) between the three LOD modes."""
    reveal_below: float = REVEAL_BELOW_DEGREES
    fog_above: float = FOG_ABOVE_DEGREES

    def __post_init__(self):
        if self.reveal_below < 0 or self.fog_above < self.reveal_below:
            raise ValueError("LOD thresholds must satisfy 0 <= reveal_below <= fog_above")

    def classify(self, viewport: Viewport) -> LevelOfDetail:
        span = viewport.max_span
        if span < self.reveal_below:
            return LevelOfDetail.REVEALED
        if span > self.fog_above:
            return LevelOfDetail.FOGGED
        return LevelOfDetail.CELLS


@dataclass(frozen=True)
class FogStyle:
    """Presentation settings handed to the map widget with the geometry."""
    color: str = "blue"
    opacity: float = DEFAULT_FOG_OPACITY

    def __post_init__(self):
        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError("Fog opacity must be between 0 and 1")

    @property
    def border_opacity(self) -> float:
        return min(self.opacity + 0.15, 1.0)


@dataclass
class FogOverlay:
    """Outer ring plus hole rings, all closed (first point repeated last)."""
    outer: Ring
    holes: list[Ring] = field(default_factory=list)
    lod: LevelOfDetail = LevelOfDetail.CELLS

    def to_geojson(self) -> dict:
        """GeoJSON Polygon ([lon, lat] order, exterior ring first)."""
        rings = [self.outer] + self.holes
        return {
            "type": "Polygon",
            "coordinates": [[[lon, lat] for lat, lon in ring] for ring in rings],
        }


def rectangle_ring(bounds: Bounds) -> Ring:
    """Closed 5-point ring around a box, counter-clockwise from the south-west corner."""
    return [
        (bounds.south, bounds.west),
        (bounds.south, bounds.east),
        (bounds.north, bounds.east),
        (bounds.north, bounds.west),
        (bounds.south, bounds.west),
    ]


def cell_bounds(cell: GridCell) -> Bounds:
    """Lat/lon box spanning one grid cell."""
    return Bounds(south=cell.south, west=cell.west, north=cell.north, east=cell.east)


def clip_bounds(inner: Bounds, outer: Bounds) -> Optional[Bounds]:
    """
    Intersection of two boxes.

    Returns:
        The overlapping box, or None if the overlap has no area
    """
    clipped = Bounds(
        south=max(inner.south, outer.south),
        west=max(inner.west, outer.west),
        north=min(inner.north, outer.north),
        east=min(inner.east, outer.east),
    )
    if clipped.south >= clipped.north or clipped.west >= clipped.east:
        return None
    return clipped


class FogRenderer:
    """
    Builds fog overlays from a viewport and a grid.

    Stateless apart from its configuration; safe to call on every pan/zoom.
    Reads the grid only through cells_intersecting().
    """

    def __init__(
        self,
        padding_cap: float = PADDING_CAP_DEGREES,
        thresholds: LodThresholds = None,
        style: FogStyle = None,
    ):
        self.padding_cap = padding_cap
        self.thresholds = thresholds or LodThresholds()
        self.style = style or FogStyle()

    def outer_bounds(self, viewport: Viewport) -> Bounds:
        return viewport.padded_bounds(self.padding_cap)

    def build_overlay(self, viewport: Viewport, grid: ExplorationGrid) -> FogOverlay:
        """
        Compute the fog polygon for the current view.

        Args:
            viewport: Current (already clamped) map viewport
            grid: Visited cells

        Returns:
            FogOverlay with holes for the visible explored cells
        """
        start_time = time.time()
        outer_bounds = self.outer_bounds(viewport)
        lod = self.thresholds.classify(viewport)

        if lod == LevelOfDetail.FOGGED:
            holes = []
        elif lod == LevelOfDetail.REVEALED:
            holes = self._marker_hole(viewport, grid, outer_bounds)
        else:
            holes = self._cell_holes(viewport, grid, outer_bounds)

        metrics.overlay_build_duration_seconds.labels(lod=lod.value).observe(time.time() - start_time)
        metrics.overlay_holes.observe(len(holes))
        log.debug("fog.overlay_built", lod=lod.value, holes=len(holes), span=viewport.max_span)

        return FogOverlay(outer=rectangle_ring(outer_bounds), holes=holes, lod=lod)

    def _cell_holes(self, viewport: Viewport, grid: ExplorationGrid, outer_bounds: Bounds) -> list[Ring]:
        """One square hole per visited cell, cut back to the outer ring at its edges."""
        holes = []
        for cell in grid.cells_intersecting(viewport, self.padding_cap):
            clipped = clip_bounds(cell_bounds(cell), outer_bounds)
            if clipped is not None:
                holes.append(rectangle_ring(clipped))
        return holes

    def _marker_hole(self, viewport: Viewport, grid: ExplorationGrid, outer_bounds: Bounds) -> list[Ring]:
        """One hole covering every visited cell in view, clipped to the outer ring."""
        cells = list(grid.cells_intersecting(viewport, self.padding_cap))
        if not cells:
            return []

        marker = clip_bounds(
            Bounds(
                south=min(c.south for c in cells),
                west=min(c.west for c in cells),
                north=max(c.north for c in cells),
                east=max(c.east for c in cells),
            ),
            outer_bounds,
        )
        if marker is None:
            return []
        return [rectangle_ring(marker)]
