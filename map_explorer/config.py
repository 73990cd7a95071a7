"""Configuration management."""
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings pulled from environment variables (prefix EXPLORER_)."""

    # Persistence
    data_dir: Path = Field(default=Path("data"), description="Directory holding the snapshot file")
    snapshot_filename: str = Field(default="explored.wkb", description="Snapshot file name")
    autosave_interval_s: float = Field(default=30.0, gt=0, description="Seconds between autosaves")

    # Geometry
    default_buffer_m: float = Field(default=15.0, gt=0, description="Buffer radius when none is given")
    max_connect_distance_m: float = Field(default=10_000.0, gt=0, description="Longest corridor between fixes")
    max_no_fix_interval_s: float = Field(default=30.0, gt=0, description="Silence that may hide a tunnel")
    min_teleport_distance_m: float = Field(default=100.0, ge=0, description="Shortest jump treated as a tunnel")

    # Rebuild
    rebuild_max_fixes: int = Field(default=20_000, gt=0, description="Downsampling threshold for rebuild")
    rebuild_batch_size: int = Field(default=200, gt=0, description="Fixes replayed per batch")

    # API
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Logging
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def snapshot_path(self) -> Path:
        """Full path of the snapshot file."""
        return Path(self.data_dir) / self.snapshot_filename

    class Config:
        env_prefix = "EXPLORER_"
        env_file = ".env"


settings = Settings()
