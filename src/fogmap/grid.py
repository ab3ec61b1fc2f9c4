"""
Spatial indexing using a fixed lat/lon square grid.

Cell size 0.003° ≈ 334m of latitude (~0.2 miles at the equator). Longitude
cells narrow toward the poles; that distortion is accepted, not corrected.
"""
import math
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

import structlog

from .geo import lat_lon_box_area_km2
from .viewport import PADDING_CAP_DEGREES, Bounds, Viewport

log = structlog.get_logger()

# Grid resolution in degrees (process-wide constant)
# 0.001 = ~111m cells
# 0.003 = ~334m cells ← used for exploration, matches a few GPS ticks of walking
# 0.01  = ~1.1km cells
CELL_SIZE_DEGREES = 0.003


@dataclass(frozen=True, order=True)
class GridCell:
    """A grid square identified by its integer (lat, lon) indices."""
    lat_index: int
    lon_index: int

    @property
    def south(self) -> float:
        return self.lat_index * CELL_SIZE_DEGREES

    @property
    def west(self) -> float:
        return self.lon_index * CELL_SIZE_DEGREES

    @property
    def north(self) -> float:
        return (self.lat_index + 1) * CELL_SIZE_DEGREES

    @property
    def east(self) -> float:
        return (self.lon_index + 1) * CELL_SIZE_DEGREES

    @property
    def area_km2(self) -> float:
        return lat_lon_box_area_km2(self.south, self.west, self.north, self.east)


def latlon_to_cell(lat: float, lon: float) -> GridCell:
    """
    Convert lat/lon to the grid cell containing it.

    Args:
        lat: Latitude
        lon: Longitude

    Returns:
        GridCell (floor division, so negative coordinates round down)
    """
    return GridCell(
        lat_index=int(math.floor(lat / CELL_SIZE_DEGREES)),
        lon_index=int(math.floor(lon / CELL_SIZE_DEGREES)),
    )


def get_neighbor_cells(cell: GridCell, k: int = 1) -> list[GridCell]:
    """
    Get every cell in the (2k+1) x (2k+1) block centered on a cell.

    Args:
        cell: Center cell
        k: Block radius in cells

    Returns:
        List of cells including the center, row by row

    Examples:
        k=0: 1 cell (just the center)
        k=1: 9 cells (3x3)
        k=2: 25 cells (5x5)
    """
    if k < 0:
        raise ValueError("Neighborhood radius cannot be negative")
    return [
        GridCell(cell.lat_index + d_lat, cell.lon_index + d_lon)
        for d_lat in range(-k, k + 1)
        for d_lon in range(-k, k + 1)
    ]


def cell_to_latlon(cell: GridCell) -> tuple[float, float]:
    """
    Convert a cell back to lat/lon (its south-west corner).

    Returns:
        Tuple of (lat, lon)
    """
    return cell.south, cell.west


def bounds_to_index_range(bounds: Bounds) -> tuple[int, int, int, int]:
    """
    Inclusive cell index range covered by a lat/lon box.

    Returns:
        Tuple of (min_lat_index, max_lat_index, min_lon_index, max_lon_index)
    """
    return (
        int(math.floor(bounds.south / CELL_SIZE_DEGREES)),
        int(math.floor(bounds.north / CELL_SIZE_DEGREES)),
        int(math.floor(bounds.west / CELL_SIZE_DEGREES)),
        int(math.floor(bounds.east / CELL_SIZE_DEGREES)),
    )


class ExplorationGrid:
    """
    Set of visited grid cells.

    Cells are kept in insertion order (oldest first) so an optional cap can
    evict the oldest ones. A per-row index (lat_index -> lon indices) keeps
    viewport queries proportional to what is visible.
    """

    def __init__(self, max_cells: Optional[int] = None):
        if max_cells is not None and max_cells < 1:
            raise ValueError("max_cells must be at least 1")
        self.max_cells = max_cells
        self._cells: dict[GridCell, None] = {}
        self._rows: dict[int, set[int]] = {}
        self._area_km2 = 0.0

    def __len__(self) -> int:
        return len(self._cells)

    @property
    def explored_area_km2(self) -> float:
        """Ground area of all visited cells."""
        return max(self._area_km2, 0.0)

    def __contains__(self, cell: GridCell) -> bool:
        return cell in self._cells

    def __iter__(self) -> Iterator[GridCell]:
        return iter(list(self._cells))

    def mark_visited(self, position, neighborhood_radius: int = 1) -> int:
        """
        Mark the cell under a position and its neighborhood as visited.

        Args:
            position: Anything with latitude/longitude attributes
            neighborhood_radius: 1 marks the 3x3 block around the cell

        Returns:
            Number of cells that were not visited before
        """
        center = latlon_to_cell(position.latitude, position.longitude)
        added = self.add_cells(get_neighbor_cells(center, k=neighborhood_radius))
        if added:
            log.debug("grid.cells_marked", added=added, total=len(self._cells),
                      lat_index=center.lat_index, lon_index=center.lon_index)
        return added

    def add_cells(self, cells: Iterable[GridCell]) -> int:
        """Insert cells; already-visited cells keep their first insertion age."""
        added = 0
        for cell in cells:
            if cell in self._cells:
                continue
            self._cells[cell] = None
            self._rows.setdefault(cell.lat_index, set()).add(cell.lon_index)
            self._area_km2 += cell.area_km2
            added += 1
        if self.max_cells is not None and len(self._cells) > self.max_cells:
            self._evict_oldest(len(self._cells) - self.max_cells)
        return added

    def _evict_oldest(self, count: int) -> None:
        oldest = []
        for cell in self._cells:
            if len(oldest) >= count:
                break
            oldest.append(cell)
        for cell in oldest:
            del self._cells[cell]
            self._area_km2 -= cell.area_km2
            row = self._rows[cell.lat_index]
            row.discard(cell.lon_index)
            if not row:
                del self._rows[cell.lat_index]
        log.info("grid.cells_evicted", evicted=len(oldest), max_cells=self.max_cells)

    def cells_intersecting(self, viewport: Viewport, padding_cap: float = PADDING_CAP_DEGREES) -> "CellQuery":
        """
        Visited cells inside the viewport box grown by the overlay padding.

        Returns a lazy, restartable iterable: every iteration re-runs the
        query against the current grid contents.
        """
        return CellQuery(self, viewport.padded_bounds(padding_cap))

    def cells_in_bounds(self, bounds: Bounds) -> Iterator[GridCell]:
        """Yield visited cells whose indices fall inside a lat/lon box."""
        min_lat, max_lat, min_lon, max_lon = bounds_to_index_range(bounds)
        lon_width = max_lon - min_lon + 1

        # Walk whichever is smaller: the row range or the populated rows
        if max_lat - min_lat + 1 <= len(self._rows):
            lat_indices = (i for i in range(min_lat, max_lat + 1) if i in self._rows)
        else:
            lat_indices = (i for i in sorted(self._rows) if min_lat <= i <= max_lat)

        for lat_index in lat_indices:
            row = self._rows.get(lat_index)
            if not row:
                continue
            if lon_width <= len(row):
                lon_indices = (j for j in range(min_lon, max_lon + 1) if j in row)
            else:
                lon_indices = (j for j in sorted(row) if min_lon <= j <= max_lon)
            for lon_index in lon_indices:
                yield GridCell(lat_index, lon_index)

    def reset(self) -> None:
        """Forget every visited cell."""
        self._cells.clear()
        self._rows.clear()
        self._area_km2 = 0.0

    def serialize(self) -> list[list[int]]:
        """Visited cells as [lat_index, lon_index] pairs, oldest first."""
        return [[cell.lat_index, cell.lon_index] for cell in self._cells]

    def restore(self, pairs: Iterable[Iterable[int]]) -> None:
        """Replace the contents with serialized [lat_index, lon_index] pairs."""
        cells = []
        for pair in pairs:
            lat_index, lon_index = pair
            cells.append(GridCell(int(lat_index), int(lon_index)))
        self.reset()
        self.add_cells(cells)


class CellQuery:
    """Restartable view over the cells of a grid inside a box."""

    def __init__(self, grid: ExplorationGrid, bounds: Bounds):
        self.grid = grid
        self.bounds = bounds

    def __iter__(self) -> Iterator[GridCell]:
        return self.grid.cells_in_bounds(self.bounds)
