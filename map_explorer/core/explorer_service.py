"""
Explorer Service.

Wires the engine together for a running process: loads the snapshot at
start, rebuilds from fix history when no usable snapshot exists, autosaves
periodically and saves once more on shutdown.
"""
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Optional, Sequence
import logging

from map_explorer.config import Settings
from map_explorer.errors import StorageExhaustedError
from map_explorer.models import ExplorerStatistics, Fix, FixOutcome, RebuildSummary
from .area_accumulator import AreaAccumulator
from .gap_classifier import GapClassifier
from .kml_exporter import KMLExporter
from .persistence import SnapshotStore
from .polygon_exporter import PolygonExporter
from .statistics import StatisticsCalculator

logger = logging.getLogger(__name__)


class ExplorerService:
    """Process-wide owner of the explored region."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        fix_source: Optional[Callable[[], Sequence[Fix]]] = None,
        progress_callback: Optional[Callable[[str, int], None]] = None
    ):
        """
        Initialize explorer service.

        Args:
            settings: Engine settings; defaults read from the environment
            fix_source: Optional callable returning the chronological fix
                history, used to rebuild when no snapshot is available
            progress_callback: Optional callback function(message, progress_pct)
                for rebuild progress
        """
        self.settings = settings or Settings()
        self.fix_source = fix_source
        self.progress_callback = progress_callback

        self.accumulator = AreaAccumulator(GapClassifier(
            max_connect_distance_m=self.settings.max_connect_distance_m,
            max_no_fix_interval_s=self.settings.max_no_fix_interval_s,
            min_teleport_distance_m=self.settings.min_teleport_distance_m
        ))
        self.store = SnapshotStore(self.settings.snapshot_path)

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="explorer-rebuild")
        self._rebuild_future: Optional[Future] = None
        self._autosave_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._fatal_error: Optional[StorageExhaustedError] = None
        self.started = False

        # Set from the snapshot load; cleared once a rebuild replaces the region
        self.needs_rebuild = False
        self.snapshot_error: Optional[str] = None

    # ---------- Lifecycle ----------
    def start(self):
        """Load the snapshot, schedule a rebuild if needed and start autosave."""
        logger.info(f"Starting explorer service (snapshot: {self.store.path})")

        result = self.store.load()
        self.needs_rebuild = result.needs_rebuild
        self.snapshot_error = result.error
        if not result.region.is_empty:
            self.accumulator.replace_region(result.region)

        if result.needs_rebuild:
            if self.fix_source is not None:
                logger.info("No usable snapshot, rebuilding explored area from fix history in background")
                self._rebuild_future = self._executor.submit(self._rebuild_from_source)
            else:
                logger.warning("No usable snapshot and no fix source; explored area needs a rebuild from fix history")

        self._stop_event.clear()
        self._autosave_thread = threading.Thread(
            target=self._autosave_loop,
            name="explorer-autosave",
            daemon=True
        )
        self._autosave_thread.start()
        self.started = True

    def stop(self):
        """
        Stop background work and write a final snapshot.

        Raises:
            StorageExhaustedError: If storage filled up during autosave or
                the final save
        """
        logger.info("Stopping explorer service")

        self._stop_event.set()
        if self._autosave_thread is not None:
            self._autosave_thread.join(timeout=self.settings.autosave_interval_s + 5)
            self._autosave_thread = None

        if self._rebuild_future is not None:
            self._rebuild_future.result()
            self._rebuild_future = None

        self._executor.shutdown(wait=True)
        self.started = False

        if self._fatal_error is not None:
            raise self._fatal_error

        self.save()

    def _rebuild_from_source(self) -> Optional[RebuildSummary]:
        # Live fixes wait on the lock from the history read until the replay
        # ends, so fix_source must return every fix ingested before that.
        try:
            with self.accumulator.lock:
                fixes = self.fix_source()
                if not fixes:
                    logger.info("Fix history is empty, nothing to rebuild")
                    self.needs_rebuild = False
                    return None
                return self.rebuild_from_fixes(fixes)
        except MemoryError:
            raise
        except Exception as e:
            logger.error(f"Rebuild from fix history failed: {e}", exc_info=True)
            return None

    def _autosave_loop(self):
        interval = self.settings.autosave_interval_s
        while not self._stop_event.wait(interval):
            # A half-rebuilt region must not replace the last good snapshot
            if self.rebuild_in_progress:
                continue
            try:
                self.save()
            except StorageExhaustedError as e:
                logger.error(f"Autosave stopped: {e}")
                self._fatal_error = e
                return

    # ---------- Ingest ----------
    def add_fix(
        self,
        longitude: float,
        latitude: float,
        timestamp_ms: int,
        buffer_radius_m: Optional[float] = None
    ) -> FixOutcome:
        """
        Ingest one fix.

        Args:
            longitude: Longitude in degrees
            latitude: Latitude in degrees
            timestamp_ms: Fix time in epoch milliseconds
            buffer_radius_m: Buffer radius; settings default when omitted

        Returns:
            FixOutcome
        """
        if buffer_radius_m is None:
            buffer_radius_m = self.settings.default_buffer_m

        return self.accumulator.add_fix(Fix(
            longitude=longitude,
            latitude=latitude,
            timestamp_ms=timestamp_ms,
            buffer_radius_m=buffer_radius_m
        ))

    def add_fixes(self, fixes: Sequence[Fix]) -> Dict[str, int]:
        """
        Ingest fixes in order.

        Returns:
            Count of fixes per outcome
        """
        counts = {outcome.value: 0 for outcome in FixOutcome}
        for fix in fixes:
            counts[self.accumulator.add_fix(fix).value] += 1
        return counts

    def rebuild_from_fixes(
        self,
        fixes: Sequence[Fix],
        buffer_radius_fn: Optional[Callable[[Fix], float]] = None
    ) -> RebuildSummary:
        """Replace the explored region with one rebuilt from history."""
        summary = self.accumulator.rebuild_from_fixes(
            fixes,
            buffer_radius_fn=buffer_radius_fn,
            batch_size=self.settings.rebuild_batch_size,
            max_fixes=self.settings.rebuild_max_fixes,
            progress_callback=self.progress_callback
        )
        self.needs_rebuild = False
        self.snapshot_error = None
        return summary

    def reset(self):
        self.accumulator.reset()

    # ---------- Export ----------
    def to_renderable_polygon(self) -> Dict:
        return PolygonExporter.to_renderable_polygon(self.accumulator.region)

    def explored_geojson(self) -> Dict:
        return PolygonExporter.to_explored_geojson(self.accumulator.region)

    def tunnel_segments_geojson(self) -> Dict:
        return PolygonExporter.tunnel_segments_geojson(self.accumulator.tunnel_segments)

    def export_kml(self, output_path: str, name: str = "Explored Area") -> str:
        return KMLExporter().export(self.accumulator.snapshot(), output_path, name=name)

    # ---------- Statistics ----------
    def explored_area_meters(self) -> float:
        return StatisticsCalculator.area(self.accumulator.region)

    def explored_percent_of_earth(self) -> float:
        return StatisticsCalculator.percent_of_earth_surface(self.accumulator.region)

    def explored_percent_of_land(self) -> float:
        return StatisticsCalculator.percent_of_land(self.accumulator.region)

    def statistics(self) -> ExplorerStatistics:
        return StatisticsCalculator.summarize(self.accumulator.snapshot())

    # ---------- Persistence ----------
    def save(self) -> bool:
        """
        Persist the current region.

        Returns:
            True if the snapshot was written

        Raises:
            StorageExhaustedError: If storage is full
        """
        return self.store.save(self.accumulator.region)

    @property
    def rebuild_in_progress(self) -> bool:
        return self._rebuild_future is not None and not self._rebuild_future.done()
