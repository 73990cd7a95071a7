"""
Tests for KML export.
"""
from map_explorer.core.area_accumulator import AreaAccumulator, ExplorerState
from map_explorer.core.kml_exporter import KMLExporter
from map_explorer.models import Fix


def test_export_explored_area_and_tunnels(tmp_path):
    """Test KML export of polygons, tunnel lines and statistics."""
    acc = AreaAccumulator()
    acc.add_fix(Fix(longitude=8.54, latitude=47.37, timestamp_ms=0))
    acc.add_fix(Fix(longitude=8.5405, latitude=47.37, timestamp_ms=2_000))
    acc.add_fix(Fix(longitude=8.54, latitude=47.39, timestamp_ms=120_000))

    output = tmp_path / "explored.kml"
    result = KMLExporter().export(acc.snapshot(), str(output), name="Zurich")

    assert result == str(output)
    content = output.read_text()
    assert "<name>Zurich</name>" in content
    assert "Explored Area" in content
    assert "Tunnel Gaps" in content
    assert "<LineString" in content
    assert "Explorer Statistics" in content


def test_export_empty_state(tmp_path):
    """Test an empty state exports folders without placemarks."""
    output = tmp_path / "empty.kml"
    KMLExporter().export(ExplorerState(), str(output))

    content = output.read_text()
    assert "Explored Area" in content
    assert "<Polygon" not in content
    assert "Explorer Statistics" not in content
