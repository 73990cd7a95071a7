"""
Main FastAPI application for the Map Explorer engine.
"""
import logging
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from map_explorer.api.routes import router as api_router
from map_explorer.config import Settings, settings
from map_explorer.core.explorer_service import ExplorerService
from map_explorer.version import VERSION, BUILD_DATE, get_version_info

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Map Explorer Engine",
    description="Accumulate GPS fixes into an explored-area footprint and export the fog polygon",
    version=VERSION
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details."""
    errors = exc.errors()
    logger.error(f"Validation error on {request.method} {request.url}")
    logger.error(f"Validation errors: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(errors)},
    )

# Include API routes
app.include_router(api_router, prefix="/api/v1")

# Version endpoint
@app.get("/api/v1/version")
async def get_version():
    """Get API version information."""
    return get_version_info()

# Health check endpoint
@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    service = getattr(request.app.state, 'explorer', None)
    return {
        "status": "healthy",
        "service": "Map Explorer Engine",
        "version": VERSION,
        "build_date": BUILD_DATE,
        "rebuild_in_progress": bool(service and service.rebuild_in_progress),
        "needs_rebuild": bool(service and service.needs_rebuild)
    }

# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": "Map Explorer Engine API",
        "version": VERSION,
        "build_date": BUILD_DATE,
        "docs": "/docs",
        "health": "/health"
    }

# Startup event
@app.on_event("startup")
async def startup_event():
    """Load the explored area and start autosave."""
    logger.info("=" * 80)
    logger.info(f"Starting Map Explorer Engine API")
    logger.info(f"Version: {VERSION}")
    logger.info(f"Build Date: {BUILD_DATE}")
    logger.info("=" * 80)

    service = ExplorerService(Settings())
    service.start()
    app.state.explorer = service

# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Stop background work and save a final snapshot."""
    logger.info("Shutting down Map Explorer Engine API")

    service = getattr(app.state, 'explorer', None)
    if service is not None:
        service.stop()
        app.state.explorer = None


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "map_explorer.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower()
    )
