"""
KML Export functionality.

Exports the explored area and tunnel gaps to KML for viewing in
Google Earth or other GIS tools.
"""
import simplekml
from typing import List
import logging

from .polygon_exporter import polygon_components
from .projection import Projection
from .statistics import StatisticsCalculator

logger = logging.getLogger(__name__)


class KMLExporter:
    """Export the explored state to KML format."""

    def __init__(self):
        """Initialize KML exporter."""
        self.kml = None

    def export(
        self,
        state,
        output_path: str,
        name: str = "Explored Area",
        include_stats: bool = True
    ) -> str:
        """
        Export an accumulator snapshot to a KML file.

        Args:
            state: ExplorerState snapshot (Web Mercator meters)
            output_path: Path to save KML file
            name: Document name
            include_stats: Include statistics folder

        Returns:
            Path to generated KML file
        """
        logger.info(f"Exporting '{name}' to KML...")

        self.kml = simplekml.Kml()
        self.kml.document.name = name

        self._add_explored_area(state.region)
        self._add_tunnel_segments(state.tunnel_segments)

        if include_stats:
            self._add_statistics(state, name)

        self.kml.save(output_path)

        logger.info(f"KML saved to {output_path}")

        return output_path

    def _add_explored_area(self, region):
        """Add one polygon per explored component, holes included."""
        folder = self.kml.newfolder(name="Explored Area")

        for idx, component in enumerate(polygon_components(region)):
            poly = folder.newpolygon(name=f"Area {idx + 1}")
            poly.outerboundaryis = self._to_lonlat(component.exterior.coords)
            poly.innerboundaryis = [self._to_lonlat(interior.coords) for interior in component.interiors]
            poly.description = f"Area: {component.area:.0f} m²"

            poly.style.linestyle.color = simplekml.Color.green
            poly.style.linestyle.width = 2
            poly.style.polystyle.color = simplekml.Color.changealphaint(80, simplekml.Color.green)

    def _add_tunnel_segments(self, segments):
        """Add tunnel gaps as red lines."""
        folder = self.kml.newfolder(name="Tunnel Gaps")

        for idx, segment in enumerate(segments):
            line = folder.newlinestring(name=f"Tunnel {idx + 1}")
            line.coords = self._to_lonlat([segment.start, segment.end])
            line.style.linestyle.color = simplekml.Color.red
            line.style.linestyle.width = 3

    def _add_statistics(self, state, name: str):
        """Add statistics folder to KML."""
        folder = self.kml.newfolder(name="Statistics")
        stats = StatisticsCalculator.summarize(state)

        components = polygon_components(state.region)
        if not components:
            return

        centroid = components[0].representative_point()
        lon, lat = Projection.to_geographic(centroid.x, centroid.y)

        stats_point = folder.newpoint(name="Explorer Statistics")
        stats_point.coords = [(lon, lat)]

        desc = f"""
        <h2>{name} - Statistics</h2>
        <table border="1">
            <tr><td><b>Explored Area</b></td><td>{stats.area_km2:.3f} km² ({stats.area_acres:.1f} acres)</td></tr>
            <tr><td><b>Earth Surface</b></td><td>{stats.percent_of_earth:.8f} %</td></tr>
            <tr><td><b>Land Surface</b></td><td>{stats.percent_of_land:.8f} %</td></tr>
            <tr><td><b>Components</b></td><td>{stats.component_count}</td></tr>
            <tr><td><b>Tunnel Gaps</b></td><td>{stats.tunnel_segment_count}</td></tr>
        </table>
        """
        stats_point.description = desc

        stats_point.style.iconstyle.icon.href = 'http://maps.google.com/mapfiles/kml/shapes/info.png'

    @staticmethod
    def _to_lonlat(coords) -> List[tuple]:
        return [tuple(p) for p in Projection.ring_to_geographic(list(coords)).tolist()]
