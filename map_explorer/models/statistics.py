"""
Explored-area statistics models.
"""
from pydantic import BaseModel


class ExplorerStatistics(BaseModel):
    """Scalar metrics derived from the explored region."""
    area_m2: float
    area_km2: float
    area_acres: float
    percent_of_earth: float
    percent_of_land: float
    component_count: int
    hole_count: int
    tunnel_segment_count: int


class RebuildSummary(BaseModel):
    """Result of replaying historical fixes."""
    fixes_received: int
    fixes_replayed: int
    fixes_rejected: int
    downsample_step: int
