"""
Explored region persistence.

The region is stored as little-endian 2D WKB in a single file. Snapshots are
written to a temporary file and moved into place, so a crash mid-write never
leaves a truncated snapshot behind.
"""
import errno
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from shapely import wkb
from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
import logging

from map_explorer.errors import SnapshotError, StorageExhaustedError

logger = logging.getLogger(__name__)

# NDR (little endian), fixed so snapshots are byte-identical across hosts
WKB_BYTE_ORDER = 1
WKB_DIMENSION = 2

_FATAL_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


class PersistenceCodec:
    """Encode/decode the explored region as WKB."""

    @staticmethod
    def save(region: BaseGeometry) -> bytes:
        """
        Encode a region.

        Args:
            region: Polygon or MultiPolygon (may be empty)

        Returns:
            WKB bytes
        """
        return wkb.dumps(region, hex=False, byte_order=WKB_BYTE_ORDER, output_dimension=WKB_DIMENSION)

    @staticmethod
    def load(data: bytes) -> BaseGeometry:
        """
        Decode a region.

        Args:
            data: WKB bytes written by save()

        Returns:
            Polygon or MultiPolygon

        Raises:
            SnapshotError: If the bytes are not a valid polygonal WKB geometry
        """
        if not data:
            raise SnapshotError("empty snapshot")

        try:
            geom = wkb.loads(bytes(data))
        except (ShapelyError, ValueError, TypeError) as e:
            raise SnapshotError(f"corrupt snapshot: {e}") from e

        if not isinstance(geom, (Polygon, MultiPolygon)):
            raise SnapshotError(f"snapshot holds {geom.geom_type}, expected a polygonal region")

        if not geom.is_valid:
            raise SnapshotError(f"snapshot holds an invalid {geom.geom_type}")

        return geom


@dataclass(frozen=True)
class SnapshotLoadResult:
    """Outcome of reading the snapshot file at startup."""
    region: BaseGeometry
    needs_rebuild: bool
    error: Optional[str] = None


class SnapshotStore:
    """File-backed snapshot of the explored region."""

    def __init__(self, path: Union[str, Path]):
        """
        Initialize snapshot store.

        Args:
            path: Snapshot file path; its directory is created on first save
        """
        self.path = Path(path)

    def load(self) -> SnapshotLoadResult:
        """
        Read the snapshot.

        Missing or unreadable snapshots are not fatal: an empty region is
        returned and ``needs_rebuild`` tells the caller to replay history.

        Returns:
            SnapshotLoadResult
        """
        if not self.path.exists():
            logger.info(f"No snapshot at {self.path}, starting from an empty region")
            return SnapshotLoadResult(region=Polygon(), needs_rebuild=True)

        try:
            data = self.path.read_bytes()
            region = PersistenceCodec.load(data)
        except (OSError, SnapshotError) as e:
            logger.warning(f"Discarding snapshot {self.path}: {e}")
            return SnapshotLoadResult(region=Polygon(), needs_rebuild=True, error=str(e))

        logger.info(f"Loaded snapshot from {self.path}: {region.area:.0f} m², {len(data)} bytes")

        return SnapshotLoadResult(region=region, needs_rebuild=region.is_empty)

    def save(self, region: BaseGeometry) -> bool:
        """
        Write the snapshot atomically.

        Args:
            region: Region to persist

        Returns:
            True if written; False if the write failed and the previous
            snapshot was kept

        Raises:
            StorageExhaustedError: If the device or quota is full
        """
        tmp_path = None
        try:
            data = PersistenceCodec.save(region)

            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                dir=self.path.parent
            )
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, self.path)
            tmp_path = None

        except OSError as e:
            if e.errno in _FATAL_ERRNOS:
                raise StorageExhaustedError(f"cannot write snapshot {self.path}: {e}") from e
            logger.warning(f"Snapshot save failed, keeping previous snapshot: {e}")
            return False

        except (ShapelyError, ValueError) as e:
            logger.warning(f"Snapshot encoding failed, keeping previous snapshot: {e}")
            return False

        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.debug(f"Saved snapshot to {self.path} ({len(data)} bytes)")

        return True
