"""
Gap classification between consecutive fixes.

Decides whether two fixes are joined by a buffered corridor or left as
separate blobs. A long silence followed by a jump (e.g. a subway ride) is a
"tunnel" gap and must never be bridged.
"""
import math
from dataclasses import dataclass
from typing import Optional, Tuple
import logging

logger = logging.getLogger(__name__)

MAX_CONNECT_DISTANCE_M = 10_000.0
MAX_NO_FIX_INTERVAL_S = 30.0
MIN_TELEPORT_DISTANCE_M = 100.0


@dataclass(frozen=True)
class GapDecision:
    """Classification of the step from the previous fix to the current one."""
    distance_m: float
    elapsed_s: float
    is_teleport_gap: bool
    should_connect: bool


class GapClassifier:
    """Distance/elapsed-time heuristics for joining consecutive fixes."""

    def __init__(
        self,
        max_connect_distance_m: float = MAX_CONNECT_DISTANCE_M,
        max_no_fix_interval_s: float = MAX_NO_FIX_INTERVAL_S,
        min_teleport_distance_m: float = MIN_TELEPORT_DISTANCE_M
    ):
        self.max_connect_distance_m = max_connect_distance_m
        self.max_no_fix_interval_s = max_no_fix_interval_s
        self.min_teleport_distance_m = min_teleport_distance_m

    @staticmethod
    def distance(prev: Tuple[float, float], cur: Tuple[float, float]) -> float:
        """Straight-line planar distance in meters."""
        return math.hypot(cur[0] - prev[0], cur[1] - prev[1])

    @staticmethod
    def elapsed_seconds(prev_ts_ms: int, ts_ms: int) -> float:
        return (ts_ms - prev_ts_ms) / 1000.0

    def is_teleport_gap(
        self,
        prev: Tuple[float, float],
        prev_ts_ms: int,
        cur: Tuple[float, float],
        ts_ms: int
    ) -> bool:
        """
        Check whether the step looks like unobserved transit.

        Args:
            prev: Previous planar point
            prev_ts_ms: Previous timestamp (ms)
            cur: Current planar point
            ts_ms: Current timestamp (ms)

        Returns:
            True when the silence and the jump both reach their thresholds
        """
        dt = self.elapsed_seconds(prev_ts_ms, ts_ms)
        dist = self.distance(prev, cur)
        return dt >= self.max_no_fix_interval_s and dist >= self.min_teleport_distance_m

    def should_connect(
        self,
        prev: Optional[Tuple[float, float]],
        prev_ts_ms: Optional[int],
        cur: Tuple[float, float],
        ts_ms: int
    ) -> bool:
        """
        Check whether a corridor should join the previous and current fix.

        Args:
            prev: Previous planar point, or None on the first fix
            prev_ts_ms: Previous timestamp (ms), or None on the first fix
            cur: Current planar point
            ts_ms: Current timestamp (ms)

        Returns:
            True when within connect range and not a teleport gap
        """
        if prev is None or prev_ts_ms is None:
            return False

        within_range = self.distance(prev, cur) <= self.max_connect_distance_m
        return within_range and not self.is_teleport_gap(prev, prev_ts_ms, cur, ts_ms)

    def classify(
        self,
        prev: Optional[Tuple[float, float]],
        prev_ts_ms: Optional[int],
        cur: Tuple[float, float],
        ts_ms: int
    ) -> Optional[GapDecision]:
        """
        Classify a step in one pass.

        Returns:
            GapDecision, or None when there is no previous fix
        """
        if prev is None or prev_ts_ms is None:
            return None

        dist = self.distance(prev, cur)
        dt = self.elapsed_seconds(prev_ts_ms, ts_ms)
        teleport = dt >= self.max_no_fix_interval_s and dist >= self.min_teleport_distance_m
        connect = dist <= self.max_connect_distance_m and not teleport

        if teleport:
            logger.debug(f"Tunnel gap: {dist:.0f} m after {dt:.0f} s")
        elif not connect:
            logger.debug(f"Jump of {dist:.0f} m exceeds connect range, starting new blob")

        return GapDecision(
            distance_m=dist,
            elapsed_s=dt,
            is_teleport_gap=teleport,
            should_connect=connect
        )
