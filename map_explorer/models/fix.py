"""
Position fix data models.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from map_explorer.buffer_policy import DEFAULT_BUFFER_METERS, buffer_radius_for_speed


class Fix(BaseModel):
    """A single position fix fed to the engine."""
    longitude: float
    latitude: float
    timestamp_ms: int
    buffer_radius_m: float = DEFAULT_BUFFER_METERS

    class Config:
        frozen = True


class FixCreate(BaseModel):
    """Request model for ingesting a fix."""
    longitude: float = Field(..., ge=-180, le=180, description="Longitude in degrees")
    latitude: float = Field(..., gt=-90, lt=90, description="Latitude in degrees")
    timestamp_ms: int = Field(..., description="Fix time in epoch milliseconds")
    buffer_radius_m: Optional[float] = Field(default=None, gt=0, description="Buffer radius in meters")
    speed_mps: Optional[float] = Field(default=None, description="Measured speed, used when no radius is given")

    def to_fix(self, default_buffer_m: float = DEFAULT_BUFFER_METERS) -> Fix:
        """Resolve the buffer radius: explicit radius, then speed bucket, then default."""
        if self.buffer_radius_m is not None:
            radius = self.buffer_radius_m
        elif self.speed_mps is not None:
            radius = buffer_radius_for_speed(self.speed_mps)
        else:
            radius = default_buffer_m

        return Fix(
            longitude=self.longitude,
            latitude=self.latitude,
            timestamp_ms=self.timestamp_ms,
            buffer_radius_m=radius
        )


class FixBatch(BaseModel):
    """Request model for a chronological list of fixes."""
    fixes: List[FixCreate] = Field(default_factory=list)


class FixOutcome(str, Enum):
    """What happened to a fix passed to add_fix."""
    CORRIDOR = "corridor"
    BLOB = "blob"
    TUNNEL = "tunnel"
    REJECTED = "rejected"
