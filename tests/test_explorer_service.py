"""
Tests for the explorer service lifecycle.
"""
import threading
import time

import pytest
from shapely.geometry import Polygon

from map_explorer.config import Settings
from map_explorer.core.explorer_service import ExplorerService
from map_explorer.core.persistence import PersistenceCodec
from map_explorer.errors import StorageExhaustedError
from map_explorer.models import Fix, FixOutcome


def make_settings(tmp_path, **overrides):
    values = dict(data_dir=tmp_path, autosave_interval_s=0.05)
    values.update(overrides)
    return Settings(**values)


def history(n=20):
    return [
        Fix(longitude=0.0, latitude=i * 0.0005, timestamp_ms=i * 2_000)
        for i in range(n)
    ]


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_stop_saves_and_restart_loads(tmp_path):
    """Test the region survives a restart."""
    service = ExplorerService(make_settings(tmp_path))
    service.start()
    for fix in history():
        service.accumulator.add_fix(fix)
    area = service.explored_area_meters()
    service.stop()

    assert service.store.path.exists()

    restarted = ExplorerService(make_settings(tmp_path))
    restarted.start()
    try:
        assert restarted.explored_area_meters() == pytest.approx(area)
    finally:
        restarted.stop()


def test_missing_snapshot_rebuilds_from_history(tmp_path):
    """Test a fresh start replays the fix source in the background."""
    progress = []
    service = ExplorerService(
        make_settings(tmp_path, rebuild_batch_size=5),
        fix_source=history,
        progress_callback=lambda msg, pct: progress.append(pct)
    )
    service.start()

    assert wait_for(lambda: not service.rebuild_in_progress)
    assert service.explored_area_meters() > 0
    assert progress[-1] == 100
    service.stop()


def test_corrupt_snapshot_triggers_rebuild(tmp_path):
    settings = make_settings(tmp_path)
    settings.snapshot_path.write_bytes(b"\x00\x01garbage")

    service = ExplorerService(settings, fix_source=history)
    service.start()

    assert wait_for(lambda: not service.rebuild_in_progress)
    assert service.explored_area_meters() > 0
    service.stop()


def test_failing_fix_source_leaves_service_running(tmp_path):
    """Test a broken history source is logged and not fatal."""
    def broken_source():
        raise RuntimeError("history unavailable")

    service = ExplorerService(make_settings(tmp_path), fix_source=broken_source)
    service.start()

    assert wait_for(lambda: not service.rebuild_in_progress)
    assert service.add_fix(0.0, 0.0, 0) is FixOutcome.BLOB
    service.stop()


def test_autosave_writes_snapshot(tmp_path):
    service = ExplorerService(make_settings(tmp_path))
    service.start()
    try:
        service.add_fix(2.35, 48.85, 0)
        assert wait_for(lambda: service.store.load().region.area > 0)
        assert service.store.load().region.area == pytest.approx(service.explored_area_meters())
    finally:
        service.stop()


def test_autosave_storage_exhausted_is_fatal(tmp_path, monkeypatch):
    """Test a full disk stops autosave and surfaces on stop."""
    service = ExplorerService(make_settings(tmp_path))

    def full_disk(region):
        raise StorageExhaustedError("no space left")

    monkeypatch.setattr(service.store, "save", full_disk)
    service.start()

    assert wait_for(lambda: service._fatal_error is not None)
    with pytest.raises(StorageExhaustedError):
        service.stop()


def test_add_fixes_counts_outcomes(tmp_path):
    service = ExplorerService(make_settings(tmp_path))
    fixes = history(5) + [Fix(longitude=0.0, latitude=0.1, timestamp_ms=300_000)]

    counts = service.add_fixes(fixes)

    assert counts == {'corridor': 4, 'blob': 1, 'tunnel': 1, 'rejected': 0}


def test_statistics_and_exports(tmp_path):
    service = ExplorerService(make_settings(tmp_path))
    service.add_fixes(history(5))

    stats = service.statistics()
    assert stats.component_count == 1
    assert stats.area_m2 == pytest.approx(service.explored_area_meters())
    assert service.explored_percent_of_land() > service.explored_percent_of_earth() > 0

    assert len(service.to_renderable_polygon()['coordinates']) == 2
    assert service.explored_geojson()['type'] == 'MultiPolygon'
    assert service.tunnel_segments_geojson()['features'] == []

    output = service.export_kml(str(tmp_path / "out.kml"))
    assert (tmp_path / "out.kml").exists()
    assert output.endswith("out.kml")

    service.reset()
    assert service.explored_area_meters() == 0.0


def test_invalid_snapshot_is_discarded(tmp_path):
    """Test a self-intersecting snapshot never blocks ingest."""
    settings = make_settings(tmp_path)
    bow_tie = Polygon([(0, 0), (100, 100), (100, 0), (0, 100), (0, 0)])
    settings.snapshot_path.write_bytes(PersistenceCodec.save(bow_tie))

    service = ExplorerService(settings)
    service.start()
    try:
        assert service.needs_rebuild is True
        assert service.snapshot_error

        outcomes = [service.add_fix(fix.longitude, fix.latitude, fix.timestamp_ms) for fix in history(5)]
        assert FixOutcome.REJECTED not in outcomes
        assert service.explored_area_meters() > 0
    finally:
        service.stop()


def test_needs_rebuild_reported_without_fix_source(tmp_path):
    """Test the rebuild flag stays set until history is replayed."""
    settings = make_settings(tmp_path)
    settings.snapshot_path.write_bytes(b"garbage")

    service = ExplorerService(settings)
    service.start()
    try:
        assert service.needs_rebuild is True
        assert service.snapshot_error is not None
        assert not service.rebuild_in_progress

        service.rebuild_from_fixes(history())

        assert service.needs_rebuild is False
        assert service.snapshot_error is None
    finally:
        service.stop()


def test_good_snapshot_needs_no_rebuild(tmp_path):
    service = ExplorerService(make_settings(tmp_path))
    service.add_fixes(history(5))
    service.save()

    restarted = ExplorerService(make_settings(tmp_path))
    restarted.start()
    try:
        assert restarted.needs_rebuild is False
        assert restarted.snapshot_error is None
    finally:
        restarted.stop()


def test_live_fix_waits_for_background_rebuild(tmp_path):
    """Test a fix arriving during the history read is applied after the replay."""
    entered = threading.Event()
    release = threading.Event()

    def slow_source():
        entered.set()
        release.wait(5)
        return history()

    service = ExplorerService(make_settings(tmp_path), fix_source=slow_source)
    service.start()
    assert entered.wait(5)

    outcomes = []
    producer = threading.Thread(target=lambda: outcomes.append(service.add_fix(1.0, 1.0, 10_000_000)))
    producer.start()
    time.sleep(0.05)
    assert outcomes == []

    release.set()
    producer.join(5)
    assert wait_for(lambda: not service.rebuild_in_progress)

    assert outcomes == [FixOutcome.TUNNEL]
    assert service.statistics().component_count == 2
    assert service.needs_rebuild is False
    service.stop()
