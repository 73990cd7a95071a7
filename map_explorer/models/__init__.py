"""
Data models for the explored-area engine.
"""

from .fix import Fix, FixBatch, FixCreate, FixOutcome
from .statistics import ExplorerStatistics, RebuildSummary

__all__ = [
    'Fix',
    'FixBatch',
    'FixCreate',
    'FixOutcome',
    'ExplorerStatistics',
    'RebuildSummary',
]
