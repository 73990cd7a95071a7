"""
Explored-area statistics.

Areas are planar Web Mercator areas. Mercator inflates areas by roughly
1/cos²(latitude), so figures away from the equator overstate the true
ground area; no geodesic correction is applied.
"""
from shapely.geometry.base import BaseGeometry

from map_explorer.models import ExplorerStatistics
from .polygon_exporter import polygon_components

EARTH_SURFACE_AREA_M2 = 5.10072e14
EARTH_LAND_AREA_M2 = 1.4894e14
SQUARE_METERS_PER_ACRE = 4046.86


class StatisticsCalculator:
    """Scalar metrics of the explored region."""

    @staticmethod
    def area(region: BaseGeometry) -> float:
        if region is None or region.is_empty:
            return 0.0
        return float(region.area)

    @staticmethod
    def percent_of_earth_surface(region: BaseGeometry) -> float:
        return StatisticsCalculator.area(region) / EARTH_SURFACE_AREA_M2 * 100.0

    @staticmethod
    def percent_of_land(region: BaseGeometry) -> float:
        return StatisticsCalculator.area(region) / EARTH_LAND_AREA_M2 * 100.0

    @staticmethod
    def summarize(state) -> ExplorerStatistics:
        """
        Collect every metric for an accumulator snapshot.

        Args:
            state: ExplorerState snapshot

        Returns:
            ExplorerStatistics
        """
        region = state.region
        area_m2 = StatisticsCalculator.area(region)
        components = polygon_components(region)

        return ExplorerStatistics(
            area_m2=area_m2,
            area_km2=area_m2 / 1e6,
            area_acres=area_m2 / SQUARE_METERS_PER_ACRE,
            percent_of_earth=StatisticsCalculator.percent_of_earth_surface(region),
            percent_of_land=StatisticsCalculator.percent_of_land(region),
            component_count=len(components),
            hole_count=sum(len(p.interiors) for p in components),
            tunnel_segment_count=len(state.tunnel_segments)
        )
