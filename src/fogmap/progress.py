"""
Gamified progress derived from the position stream and the grid.

Distance traveled and visited-cell count are independent:
distance sums raw great-circle hops between accepted positions, while level
and percent explored come only from the number of visited cells.
"""
import math
from dataclasses import dataclass, asdict
from typing import Optional

from .geo import EARTH_SURFACE_KM2, haversine_miles, lat_lon_box_area_km2
from .grid import CELL_SIZE_DEGREES

CELLS_PER_LEVEL = 100

# Area of one cell at the equator; cells shrink with cos(latitude) from there
EQUATOR_CELL_AREA_KM2 = lat_lon_box_area_km2(0.0, 0.0, CELL_SIZE_DEGREES, CELL_SIZE_DEGREES)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Current progress numbers for the presentation layer."""
    total_distance_miles: float
    level: int
    cells_until_next_level: int
    visited_cells: int
    percent_explored: float

    def to_dict(self) -> dict:
        return asdict(self)


def validate_distance(total_distance_miles: float) -> float:
    """
    Check a persisted distance before it is loaded.

    Raises:
        ValueError: If the distance is negative, NaN or infinite
    """
    distance = float(total_distance_miles)
    if not math.isfinite(distance) or distance < 0:
        raise ValueError(f"Distance must be a finite, non-negative number, got {distance}")
    return distance


def level_for(cell_count: int, cells_per_level: int = CELLS_PER_LEVEL) -> tuple[int, int]:
    """
    Level and cells remaining until the next level.

    Returns:
        Tuple of (level, cells_until_next_level)

    Examples:
        99 cells  -> (1, 1)
        100 cells -> (2, 100)
    """
    level = cell_count // cells_per_level + 1
    return level, level * cells_per_level - cell_count


class ExplorationMetrics:
    """Accumulates distance and tracks level from visited cell counts."""

    def __init__(self, cells_per_level: int = CELLS_PER_LEVEL):
        if cells_per_level < 1:
            raise ValueError("cells_per_level must be at least 1")
        self.cells_per_level = cells_per_level
        self.total_distance_miles = 0.0
        self.visited_cells = 0
        self.explored_area_km2 = 0.0
        self.level = 1
        self.cells_until_next_level = cells_per_level
        self._previous: Optional[object] = None

    @property
    def previous_position(self):
        return self._previous

    def record_position(self, position) -> float:
        """
        Add the hop from the previous position to the running distance.

        Args:
            position: Accepted position (latitude/longitude attributes)

        Returns:
            Miles added (0.0 for the first position)
        """
        added = 0.0
        if self._previous is not None:
            added = haversine_miles(
                self._previous.latitude, self._previous.longitude,
                position.latitude, position.longitude,
            )
            self.total_distance_miles += added
        self._previous = position
        return added

    def record_visited_cell_count_change(self, new_count: int, explored_area_km2: float = None) -> bool:
        """
        Recompute level from the visited cell count.

        Args:
            new_count: Number of visited cells
            explored_area_km2: Ground area of those cells; estimated from
                the equatorial cell area when not given

        Returns:
            True if the level went up
        """
        if new_count < 0:
            raise ValueError("Visited cell count cannot be negative")
        previous_level = self.level
        self.visited_cells = new_count
        self.level, self.cells_until_next_level = level_for(new_count, self.cells_per_level)
        if explored_area_km2 is None:
            explored_area_km2 = new_count * EQUATOR_CELL_AREA_KM2
        self.explored_area_km2 = explored_area_km2
        return self.level > previous_level

    @property
    def percent_explored(self) -> float:
        """Cumulative share of the Earth's surface covered by visited cells."""
        return min(self.explored_area_km2 / EARTH_SURFACE_KM2 * 100, 100.0)

    def restore(self, total_distance_miles: float, visited_cells: int, explored_area_km2: float = None) -> None:
        """Load persisted totals. The previous position is not restored."""
        self.total_distance_miles = validate_distance(total_distance_miles)
        self._previous = None
        self.record_visited_cell_count_change(visited_cells, explored_area_km2)

    def reset(self) -> None:
        """Back to a fresh session: no distance, level 1, no previous position."""
        self.total_distance_miles = 0.0
        self._previous = None
        self.record_visited_cell_count_change(0, 0.0)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            total_distance_miles=self.total_distance_miles,
            level=self.level,
            cells_until_next_level=self.cells_until_next_level,
            visited_cells=self.visited_cells,
            percent_explored=self.percent_explored,
        )
