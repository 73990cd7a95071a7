"""
FastAPI routes for fix ingest, rebuild, export and statistics.
"""
import os
import tempfile

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask
import logging

from map_explorer.core.explorer_service import ExplorerService
from map_explorer.errors import StorageExhaustedError
from map_explorer.models import ExplorerStatistics, FixBatch, FixCreate, RebuildSummary

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(request: Request) -> ExplorerService:
    """Resolve the process-wide explorer service."""
    service = getattr(request.app.state, 'explorer', None)
    if service is None:
        raise HTTPException(status_code=503, detail="Explorer service not started")
    return service


@router.post("/fixes")
def add_fix(fix: FixCreate, service: ExplorerService = Depends(get_service)):
    """
    Ingest a single fix.

    Args:
        fix: Position fix

    Returns:
        Outcome of the fix (corridor, blob, tunnel or rejected)
    """
    resolved = fix.to_fix(service.settings.default_buffer_m)
    outcome = service.accumulator.add_fix(resolved)

    return {
        'outcome': outcome.value,
        'buffer_radius_m': resolved.buffer_radius_m
    }


@router.post("/fixes/batch")
def add_fixes(batch: FixBatch, service: ExplorerService = Depends(get_service)):
    """
    Ingest a chronological list of fixes.

    Returns:
        Count of fixes per outcome
    """
    default_buffer = service.settings.default_buffer_m
    counts = service.add_fixes([f.to_fix(default_buffer) for f in batch.fixes])

    logger.info(f"Ingested batch of {len(batch.fixes)} fixes: {counts}")

    return {
        'received': len(batch.fixes),
        'outcomes': counts
    }


@router.post("/rebuild", response_model=RebuildSummary)
def rebuild(batch: FixBatch, service: ExplorerService = Depends(get_service)):
    """
    Rebuild the explored area from a fix history.

    Runs synchronously in the threadpool; live ingest waits until it is done.
    """
    default_buffer = service.settings.default_buffer_m
    fixes = [f.to_fix(default_buffer) for f in batch.fixes]

    summary = service.rebuild_from_fixes(fixes)
    logger.info(f"Rebuild via API: {summary}")

    return summary


@router.post("/reset")
def reset(service: ExplorerService = Depends(get_service)):
    """Clear the explored area."""
    service.reset()
    return {"message": "Explored area reset"}


@router.get("/fog")
def get_fog_polygon(service: ExplorerService = Depends(get_service)):
    """
    Get the fog polygon: the world with explored areas cut out.

    Returns:
        GeoJSON Polygon geometry
    """
    return service.to_renderable_polygon()


@router.get("/explored")
def get_explored(service: ExplorerService = Depends(get_service)):
    """
    Get the explored area in lon/lat.

    Returns:
        GeoJSON MultiPolygon geometry
    """
    return service.explored_geojson()


@router.get("/tunnels")
def get_tunnels(service: ExplorerService = Depends(get_service)):
    """
    Get tunnel gaps (unbridged jumps).

    Returns:
        GeoJSON FeatureCollection of LineStrings
    """
    return service.tunnel_segments_geojson()


@router.get("/statistics", response_model=ExplorerStatistics)
def get_statistics(service: ExplorerService = Depends(get_service)):
    """Get explored-area statistics."""
    return service.statistics()


@router.get("/snapshot")
def get_snapshot_status(service: ExplorerService = Depends(get_service)):
    """
    Report the state of the persisted snapshot.

    Returns:
        Snapshot path, whether a rebuild from fix history is needed and the
        load error, if any
    """
    return {
        'path': str(service.store.path),
        'exists': service.store.path.exists(),
        'needs_rebuild': service.needs_rebuild,
        'error': service.snapshot_error,
        'rebuild_in_progress': service.rebuild_in_progress
    }


@router.post("/snapshot")
def save_snapshot(service: ExplorerService = Depends(get_service)):
    """
    Persist the explored area now.

    Returns:
        Whether the snapshot was written
    """
    try:
        saved = service.save()
    except StorageExhaustedError as e:
        logger.error(f"Snapshot save failed: {e}")
        raise HTTPException(status_code=507, detail=str(e))

    return {'saved': saved, 'path': str(service.store.path)}


@router.get("/export-kml")
def export_kml(service: ExplorerService = Depends(get_service)):
    """
    Export the explored area and tunnel gaps to a KML file.

    Returns:
        KML file download
    """
    fd, output_path = tempfile.mkstemp(suffix=".kml")
    os.close(fd)

    try:
        service.export_kml(output_path)
    except (OSError, ValueError) as e:
        os.unlink(output_path)
        logger.error(f"Error exporting KML: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return FileResponse(
        output_path,
        media_type='application/vnd.google-earth.kml+xml',
        filename="explored_area.kml",
        background=BackgroundTask(os.unlink, output_path)
    )
