"""
Web Mercator projection helpers.

All geometry processing occurs in spherical Web Mercator meters (EPSG:3857)
so buffers, distances and areas can be computed on a plane. Geographic
coordinates (EPSG:4326) are only used at the edges: ingest and export.
"""
import math
import threading
from typing import Sequence, Tuple

import numpy as np
from pyproj import Transformer
import shapely
from shapely.geometry.base import BaseGeometry
import logging

from map_explorer.errors import ProjectionError

logger = logging.getLogger(__name__)

GEOGRAPHIC_EPSG = 4326
PLANAR_EPSG = 3857

# Spherical Web Mercator major radius
EARTH_RADIUS_M = 6378137.0


class Projection:
    """Converts between lon/lat degrees and Web Mercator meters."""

    _local = threading.local()

    @classmethod
    def _transformers(cls) -> Tuple[Transformer, Transformer]:
        """
        Get the forward and inverse transformers for the calling thread.

        Returns:
            Tuple of (to_planar, to_geographic) transformers
        """
        pair = getattr(cls._local, 'pair', None)
        if pair is None:
            forward = Transformer.from_crs(
                f"EPSG:{GEOGRAPHIC_EPSG}",
                f"EPSG:{PLANAR_EPSG}",
                always_xy=True
            )
            inverse = Transformer.from_crs(
                f"EPSG:{PLANAR_EPSG}",
                f"EPSG:{GEOGRAPHIC_EPSG}",
                always_xy=True
            )
            pair = (forward, inverse)
            cls._local.pair = pair
        return pair

    @staticmethod
    def validate(lon: float, lat: float):
        """
        Reject coordinates Web Mercator cannot represent.

        Args:
            lon: Longitude in degrees
            lat: Latitude in degrees

        Raises:
            ProjectionError: If a coordinate is not finite or latitude is
                outside the open interval (-90, 90)
        """
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise ProjectionError(f"Non-finite coordinate ({lon}, {lat})")
        if not -90.0 < lat < 90.0:
            raise ProjectionError(f"Latitude {lat} outside (-90, 90)")

    @staticmethod
    def to_planar(lon: float, lat: float) -> Tuple[float, float]:
        """
        Project a geographic coordinate to Web Mercator.

        Args:
            lon: Longitude in degrees
            lat: Latitude in degrees

        Returns:
            Tuple of (x, y) in meters
        """
        Projection.validate(lon, lat)
        forward, _ = Projection._transformers()
        x, y = forward.transform(lon, lat)
        return float(x), float(y)

    @staticmethod
    def to_geographic(x: float, y: float) -> Tuple[float, float]:
        """
        Unproject a Web Mercator coordinate.

        Args:
            x: Easting in meters
            y: Northing in meters

        Returns:
            Tuple of (longitude, latitude) in degrees
        """
        _, inverse = Projection._transformers()
        lon, lat = inverse.transform(x, y)
        return float(lon), float(lat)

    @staticmethod
    def ring_to_geographic(coords: Sequence[Tuple[float, float]]) -> np.ndarray:
        """
        Unproject a whole coordinate sequence in one call.

        Args:
            coords: Sequence of (x, y) pairs in meters

        Returns:
            Array of shape (n, 2) holding (longitude, latitude) pairs
        """
        arr = np.asarray(coords, dtype=float)
        if arr.size == 0:
            return np.empty((0, 2))
        _, inverse = Projection._transformers()
        lons, lats = inverse.transform(arr[:, 0], arr[:, 1])
        return np.column_stack([lons, lats])

    @staticmethod
    def to_geographic_geometry(geom: BaseGeometry) -> BaseGeometry:
        """
        Unproject a shapely geometry from Web Mercator to lon/lat.

        Args:
            geom: Geometry in meters

        Returns:
            Geometry in degrees
        """
        if geom.is_empty:
            return geom
        _, inverse = Projection._transformers()
        return shapely.transform(geom, inverse.transform, interleaved=False)

    @staticmethod
    def to_planar_geometry(geom: BaseGeometry) -> BaseGeometry:
        """
        Project a shapely geometry from lon/lat to Web Mercator.

        Args:
            geom: Geometry in degrees

        Returns:
            Geometry in meters
        """
        if geom.is_empty:
            return geom
        minx, miny, maxx, maxy = geom.bounds
        Projection.validate(minx, miny)
        Projection.validate(maxx, maxy)
        forward, _ = Projection._transformers()
        return shapely.transform(geom, forward.transform, interleaved=False)
