"""
Fog Polygon Exporter.

Turns the explored region into GeoJSON for the map: a world-sized polygon
with one hole per explored component, so everything outside the holes can be
drawn as fog.
"""
from typing import Dict, Iterable, List, Sequence

import numpy as np
from shapely.geometry import LineString, MultiPolygon, Polygon, mapping
from shapely.geometry.base import BaseGeometry
import logging

from .projection import Projection

logger = logging.getLogger(__name__)

WORLD_RING = [
    [-180.0, -90.0],
    [180.0, -90.0],
    [180.0, 90.0],
    [-180.0, 90.0],
    [-180.0, -90.0],
]


def signed_area(ring: Sequence[Sequence[float]]) -> float:
    """
    Shoelace signed area of a closed ring.

    Positive for counter-clockwise rings, negative for clockwise.

    Args:
        ring: Closed sequence of (x, y) pairs (first == last)

    Returns:
        Signed area in squared input units
    """
    pts = np.asarray(ring, dtype=float)
    if len(pts) < 3:
        return 0.0
    x, y = pts[:-1, 0], pts[:-1, 1]
    x_next, y_next = pts[1:, 0], pts[1:, 1]
    return float(np.sum(x * y_next - x_next * y) / 2.0)


def polygon_components(region: BaseGeometry) -> List[Polygon]:
    """Split a region into its simple polygon parts."""
    if region is None or region.is_empty:
        return []
    if isinstance(region, Polygon):
        return [region]
    if isinstance(region, MultiPolygon):
        return [p for p in region.geoms if not p.is_empty]

    logger.warning(f"Unexpected region type {region.geom_type}, exporting polygonal parts only")
    return [g for g in getattr(region, 'geoms', []) if isinstance(g, Polygon) and not g.is_empty]


class PolygonExporter:
    """Export the explored region in renderable GeoJSON forms."""

    @staticmethod
    def _closed(ring: List[List[float]]) -> List[List[float]]:
        if ring and ring[0] != ring[-1]:
            ring.append(list(ring[0]))
        return ring

    @staticmethod
    def _wound(ring: List[List[float]], positive: bool) -> List[List[float]]:
        area = signed_area(ring)
        if (positive and area < 0) or (not positive and area > 0):
            return ring[::-1]
        return ring

    @staticmethod
    def to_renderable_polygon(region: BaseGeometry) -> Dict:
        """
        Build the fog polygon.

        The outer ring spans the whole world and winds counter-clockwise;
        each explored component contributes its exterior ring, converted to
        lon/lat, as a clockwise hole.

        Args:
            region: Explored region in Web Mercator meters

        Returns:
            GeoJSON Polygon geometry dict
        """
        outer = PolygonExporter._wound([list(p) for p in WORLD_RING], positive=True)
        rings = [outer]

        for component in polygon_components(region):
            lonlat = Projection.ring_to_geographic(component.exterior.coords)
            ring = PolygonExporter._closed(lonlat.tolist())
            if len(ring) < 4:
                continue
            rings.append(PolygonExporter._wound(ring, positive=False))

        return {
            'type': 'Polygon',
            'coordinates': rings
        }

    @staticmethod
    def to_explored_geojson(region: BaseGeometry) -> Dict:
        """
        Export the explored region itself in lon/lat.

        Args:
            region: Explored region in Web Mercator meters

        Returns:
            GeoJSON MultiPolygon geometry dict
        """
        parts = [Projection.to_geographic_geometry(p) for p in polygon_components(region)]
        return mapping(MultiPolygon(parts))

    @staticmethod
    def tunnel_segments_geojson(segments: Iterable) -> Dict:
        """
        Export tunnel gaps as line features.

        Args:
            segments: TunnelSegment objects in Web Mercator meters

        Returns:
            GeoJSON FeatureCollection of LineStrings
        """
        features = []
        for idx, segment in enumerate(segments):
            coords = Projection.ring_to_geographic([segment.start, segment.end]).tolist()
            features.append({
                'type': 'Feature',
                'properties': {'sequence': idx + 1},
                'geometry': mapping(LineString(coords))
            })

        return {
            'type': 'FeatureCollection',
            'features': features
        }
