"""
Explored Area Accumulator.

Owns the explored region: every fix is buffered (as a point, or as a corridor
joining it to the previous fix) and unioned into a single ever-growing
geometry in Web Mercator meters.
"""
import math
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from shapely.errors import GEOSException
from shapely.geometry import LineString, MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry
import logging

from map_explorer.errors import GeometryUnionError, ProjectionError
from map_explorer.models import Fix, FixOutcome, RebuildSummary
from .gap_classifier import GapClassifier
from .projection import Projection

logger = logging.getLogger(__name__)

BUFFER_QUAD_SEGS = 8
REBUILD_MAX_FIXES = 20_000
REBUILD_BATCH_SIZE = 200

PlanarPoint = Tuple[float, float]


@dataclass(frozen=True)
class TrackCursor:
    """Last accepted fix, in planar meters."""
    last_point: Optional[PlanarPoint] = None
    last_timestamp_ms: Optional[int] = None


@dataclass(frozen=True)
class TunnelSegment:
    """Unbridged jump between two fixes, kept for display only."""
    start: PlanarPoint
    end: PlanarPoint


@dataclass(frozen=True)
class ExplorerState:
    """Immutable snapshot of the accumulator; replaced wholesale on each change."""
    region: BaseGeometry = field(default_factory=Polygon)
    cursor: TrackCursor = field(default_factory=TrackCursor)
    tunnel_segments: Tuple[TunnelSegment, ...] = ()


def empty_region() -> Polygon:
    return Polygon()


def is_polygonal(geom: BaseGeometry) -> bool:
    return isinstance(geom, (Polygon, MultiPolygon))


def downsample_fixes(fixes: Sequence[Fix], max_fixes: int = REBUILD_MAX_FIXES) -> Tuple[List[Fix], int]:
    """
    Thin out a large fix history with a fixed stride.

    Keeps every fix whose index is a multiple of ``len(fixes) // max_fixes``.
    The reduction is deterministic, so repeated rebuilds give the same region.

    Args:
        fixes: Chronologically ordered fixes
        max_fixes: Size above which the history is thinned

    Returns:
        Tuple of (kept fixes, stride used)
    """
    n = len(fixes)
    if n <= max_fixes:
        return list(fixes), 1

    step = n // max_fixes
    kept = [fix for idx, fix in enumerate(fixes) if idx % step == 0]
    logger.info(f"Downsampled {n} fixes to {len(kept)} (step {step})")
    return kept, step


class AreaAccumulator:
    """Accumulate buffered fixes into the explored region."""

    def __init__(self, classifier: Optional[GapClassifier] = None):
        """
        Initialize the accumulator with an empty region.

        Args:
            classifier: Gap classifier; default thresholds when omitted
        """
        self.classifier = classifier or GapClassifier()
        self._lock = threading.RLock()
        self._state = ExplorerState()

    # Readers take the current state reference; it is never mutated in place.
    def snapshot(self) -> ExplorerState:
        return self._state

    @property
    def lock(self) -> threading.RLock:
        """Ingest lock; holding it keeps live fixes out until released."""
        return self._lock

    @property
    def region(self) -> BaseGeometry:
        return self._state.region

    @property
    def cursor(self) -> TrackCursor:
        return self._state.cursor

    @property
    def tunnel_segments(self) -> Tuple[TunnelSegment, ...]:
        return self._state.tunnel_segments

    def add_fix(self, fix: Fix) -> FixOutcome:
        """
        Buffer a fix and union it into the explored region.

        Args:
            fix: Position fix

        Returns:
            FixOutcome describing the contribution; REJECTED leaves the
            region and cursor untouched
        """
        return self._ingest(fix.longitude, fix.latitude, fix.timestamp_ms, fix.buffer_radius_m)

    def _ingest(self, lon: float, lat: float, timestamp_ms: int, buffer_m: float) -> FixOutcome:
        try:
            mx, my = Projection.to_planar(lon, lat)
        except ProjectionError as e:
            logger.warning(f"Rejected fix at ({lon}, {lat}): {e}")
            return FixOutcome.REJECTED

        if not math.isfinite(buffer_m) or buffer_m <= 0:
            logger.warning(f"Rejected fix at ({lon:.6f}, {lat:.6f}): invalid buffer radius {buffer_m}")
            return FixOutcome.REJECTED

        with self._lock:
            state = self._state
            prev = state.cursor.last_point
            decision = self.classifier.classify(
                prev,
                state.cursor.last_timestamp_ms,
                (mx, my),
                timestamp_ms
            )

            tunnels = state.tunnel_segments
            if decision is not None and decision.should_connect:
                if decision.distance_m > 0:
                    path = LineString([prev, (mx, my)])
                else:
                    path = Point(mx, my)
                shape = path.buffer(buffer_m, quad_segs=BUFFER_QUAD_SEGS)
                outcome = FixOutcome.CORRIDOR
            else:
                shape = Point(mx, my).buffer(buffer_m, quad_segs=BUFFER_QUAD_SEGS)
                outcome = FixOutcome.BLOB
                if decision is not None and decision.is_teleport_gap:
                    tunnels = tunnels + (TunnelSegment(start=prev, end=(mx, my)),)
                    outcome = FixOutcome.TUNNEL

            try:
                region = self._union(state.region, shape)
            except GeometryUnionError as e:
                logger.warning(f"Rejected fix at ({lon:.6f}, {lat:.6f}): {e}")
                return FixOutcome.REJECTED

            self._state = ExplorerState(
                region=region,
                cursor=TrackCursor(last_point=(mx, my), last_timestamp_ms=timestamp_ms),
                tunnel_segments=tunnels
            )

        return outcome

    @staticmethod
    def _union(region: BaseGeometry, shape: BaseGeometry) -> BaseGeometry:
        """
        Union an incremental shape into the region without touching either.

        Raises:
            GeometryUnionError: If the shape is degenerate or GEOS fails
        """
        if shape.is_empty or not shape.is_valid:
            raise GeometryUnionError("degenerate incremental shape")

        if region.is_empty:
            return shape

        try:
            merged = region.union(shape)
        except (GEOSException, ValueError) as e:
            raise GeometryUnionError(f"union failed: {e}") from e

        if not is_polygonal(merged) or not merged.is_valid:
            raise GeometryUnionError(f"union produced {merged.geom_type}")

        return merged

    def reset(self):
        """Clear the region, the cursor and the tunnel history."""
        with self._lock:
            self._state = ExplorerState()
        logger.info("Explored region reset")

    def replace_region(self, region: BaseGeometry):
        """
        Install a previously persisted region.

        Args:
            region: Polygon or MultiPolygon in Web Mercator meters
        """
        if not is_polygonal(region):
            raise GeometryUnionError(f"cannot install {region.geom_type} as explored region")
        if not region.is_valid:
            raise GeometryUnionError(f"cannot install an invalid {region.geom_type} as explored region")

        with self._lock:
            self._state = ExplorerState(region=region)

    def rebuild_from_fixes(
        self,
        fixes: Sequence[Fix],
        buffer_radius_fn: Optional[Callable[[Fix], float]] = None,
        batch_size: int = REBUILD_BATCH_SIZE,
        max_fixes: int = REBUILD_MAX_FIXES,
        progress_callback: Optional[Callable[[str, int], None]] = None
    ) -> RebuildSummary:
        """
        Reset and replay a fix history in chronological order.

        The lock is held for the whole replay, so live fixes wait until the
        rebuild finishes.

        Args:
            fixes: Chronologically ordered fixes
            buffer_radius_fn: Optional per-fix radius override
            batch_size: Fixes replayed between progress reports
            max_fixes: Downsampling threshold
            progress_callback: Optional callback function(message, progress_pct)

        Returns:
            RebuildSummary with replay counts
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        with self._lock:
            self.reset()

            sampled, step = downsample_fixes(fixes, max_fixes)
            total = len(sampled)
            rejected = 0

            logger.info(f"Rebuilding explored region from {total} fixes...")

            for start in range(0, total, batch_size):
                for fix in sampled[start:start + batch_size]:
                    radius = buffer_radius_fn(fix) if buffer_radius_fn else fix.buffer_radius_m
                    outcome = self._ingest(fix.longitude, fix.latitude, fix.timestamp_ms, radius)
                    if outcome is FixOutcome.REJECTED:
                        rejected += 1

                done = min(start + batch_size, total)
                if progress_callback:
                    progress_callback(f"Rebuilding explored area... ({done}/{total})", int(done * 100 / total))

            logger.info(
                f"Rebuild complete: {total - rejected} fixes replayed, "
                f"{rejected} rejected, area {self._state.region.area:.0f} m²"
            )

        return RebuildSummary(
            fixes_received=len(fixes),
            fixes_replayed=total - rejected,
            fixes_rejected=rejected,
            downsample_step=step
        )

