"""
Core processing modules for the explored-area engine.
"""

from .projection import Projection
from .gap_classifier import GapClassifier, GapDecision
from .area_accumulator import AreaAccumulator, ExplorerState, TrackCursor, TunnelSegment
from .persistence import PersistenceCodec, SnapshotStore, SnapshotLoadResult
from .polygon_exporter import PolygonExporter
from .statistics import StatisticsCalculator
from .kml_exporter import KMLExporter
from .explorer_service import ExplorerService

__all__ = [
    'Projection',
    'GapClassifier',
    'GapDecision',
    'AreaAccumulator',
    'ExplorerState',
    'TrackCursor',
    'TunnelSegment',
    'PersistenceCodec',
    'SnapshotStore',
    'SnapshotLoadResult',
    'PolygonExporter',
    'StatisticsCalculator',
    'KMLExporter',
    'ExplorerService',
]
