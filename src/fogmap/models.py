from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from .location import PermissionState, Position
from .viewport import Viewport


class Fix(BaseModel):
    """Single raw GPS fix pushed by a device."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    accuracy_m: float = Field(..., description="Horizontal accuracy in meters; negative means invalid")
    timestamp: Optional[datetime] = Field(default=None)

    def to_position(self) -> Position:
        if self.timestamp is None:
            return Position(latitude=self.lat, longitude=self.lon, horizontal_accuracy_m=self.accuracy_m)
        return Position(
            latitude=self.lat,
            longitude=self.lon,
            horizontal_accuracy_m=self.accuracy_m,
            timestamp=self.timestamp,
        )


class BatchFixRequest(BaseModel):
    """Batch of fixes, delivered in order."""
    fixes: List[Fix] = Field(..., min_length=1, max_length=1000, description="List of fixes (max 1000)")


class ViewportRequest(BaseModel):
    """Map viewport reported by the client on pan/zoom."""
    center_lat: float = Field(..., ge=-90, le=90)
    center_lon: float = Field(..., ge=-180, le=180)
    lat_span: float = Field(..., ge=0)
    lon_span: float = Field(..., ge=0)

    def to_viewport(self) -> Viewport:
        return Viewport(
            center_lat=self.center_lat,
            center_lon=self.center_lon,
            lat_span=self.lat_span,
            lon_span=self.lon_span,
        )


class PermissionUpdate(BaseModel):
    """Authorization change reported by the platform."""
    permission: PermissionState


class ExplorationState(BaseModel):
    """Serialized exploration state (persistence boundary)."""
    visited_cells: List[List[int]] = Field(default_factory=list)
    total_distance_miles: float = Field(default=0.0, ge=0)
