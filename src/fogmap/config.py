"""
Runtime settings loaded from environment variables (and a .env file if present).

The grid cell size is not configurable: it is a process-wide
constant (see grid.CELL_SIZE_DEGREES) and persisted cell indices depend on it.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .fog import FOG_ABOVE_DEGREES, REVEAL_BELOW_DEGREES, DEFAULT_FOG_OPACITY
from .location import (
    ACCURACY_THRESHOLD_M,
    BACKOFF_INITIAL_SECONDS,
    BACKOFF_MAX_SECONDS,
    DEGRADE_AFTER,
    DEGRADED_ACCURACY_THRESHOLD_M,
    MAX_RETRIES,
)
from .progress import CELLS_PER_LEVEL
from .viewport import MAX_SPAN_DEGREES, PADDING_CAP_DEGREES

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Engine configuration. Build with Settings.from_env() or directly in tests."""
    accuracy_threshold_m: float = ACCURACY_THRESHOLD_M
    degraded_accuracy_threshold_m: float = DEGRADED_ACCURACY_THRESHOLD_M
    degrade_after: int = DEGRADE_AFTER
    max_retries: int = MAX_RETRIES
    backoff_initial_seconds: float = BACKOFF_INITIAL_SECONDS
    backoff_max_seconds: float = BACKOFF_MAX_SECONDS
    cells_per_level: int = CELLS_PER_LEVEL
    max_span_degrees: float = MAX_SPAN_DEGREES
    padding_cap_degrees: float = PADDING_CAP_DEGREES
    reveal_below_degrees: float = REVEAL_BELOW_DEGREES
    fog_above_degrees: float = FOG_ABOVE_DEGREES
    fog_opacity: float = DEFAULT_FOG_OPACITY
    max_cells: Optional[int] = None
    publish_events: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            accuracy_threshold_m=_env_float("FOGMAP_ACCURACY_THRESHOLD_M", ACCURACY_THRESHOLD_M),
            degraded_accuracy_threshold_m=_env_float(
                "FOGMAP_DEGRADED_ACCURACY_THRESHOLD_M", DEGRADED_ACCURACY_THRESHOLD_M
            ),
            degrade_after=_env_int("FOGMAP_DEGRADE_AFTER", DEGRADE_AFTER),
            max_retries=_env_int("FOGMAP_MAX_RETRIES", MAX_RETRIES),
            backoff_initial_seconds=_env_float("FOGMAP_BACKOFF_INITIAL_S", BACKOFF_INITIAL_SECONDS),
            backoff_max_seconds=_env_float("FOGMAP_BACKOFF_MAX_S", BACKOFF_MAX_SECONDS),
            cells_per_level=_env_int("FOGMAP_CELLS_PER_LEVEL", CELLS_PER_LEVEL),
            max_span_degrees=_env_float("FOGMAP_MAX_SPAN_DEGREES", MAX_SPAN_DEGREES),
            padding_cap_degrees=_env_float("FOGMAP_PADDING_CAP_DEGREES", PADDING_CAP_DEGREES),
            reveal_below_degrees=_env_float("FOGMAP_REVEAL_BELOW_DEGREES", REVEAL_BELOW_DEGREES),
            fog_above_degrees=_env_float("FOGMAP_FOG_ABOVE_DEGREES", FOG_ABOVE_DEGREES),
            fog_opacity=_env_float("FOGMAP_FOG_OPACITY", DEFAULT_FOG_OPACITY),
            max_cells=_env_int("FOGMAP_MAX_CELLS", None),
            publish_events=_env_bool("FOGMAP_PUBLISH_EVENTS", False),
            log_level=os.getenv("FOGMAP_LOG_LEVEL", "INFO"),
            log_json=_env_bool("FOGMAP_LOG_JSON", False),
        )
