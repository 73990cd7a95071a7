"""
Exception types raised by the explored-area engine.
"""


class ExplorerError(Exception):
    """Base class for engine errors."""


class ProjectionError(ExplorerError):
    """Coordinate outside the Web Mercator domain."""


class GeometryUnionError(ExplorerError):
    """Incremental shape could not be merged into the explored region."""


class SnapshotError(ExplorerError):
    """Persisted snapshot could not be decoded."""


class StorageExhaustedError(ExplorerError):
    """Local storage is full; snapshots can no longer be written."""
