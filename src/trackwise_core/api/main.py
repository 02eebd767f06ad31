"""Trackwise Core FastAPI application."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import get_settings
from ..exceptions import ConcurrencyConflictError, CycleDetectedError, TrackwiseError
from .routers import projects, teams, users, work_items

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("trackwise-core")

logger.info("Starting Trackwise Core API")

# Create FastAPI app
app = FastAPI(
    title="Trackwise Core API",
    description="Project tracking: hierarchical work items with audit history",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TrackwiseError)
async def handle_trackwise_error(request: Request, exc: TrackwiseError):
    """Render typed store failures as ``{"error": kind, "detail": message}``."""
    body = {"error": exc.error, "detail": exc.message}
    if isinstance(exc, CycleDetectedError):
        body["path"] = exc.path
    if isinstance(exc, ConcurrencyConflictError):
        body["retryable"] = True

    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.error}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=body)


app.include_router(users.router, prefix="/api/v1/users")
app.include_router(teams.router, prefix="/api/v1/teams")
app.include_router(projects.router, prefix="/api/v1/projects")
app.include_router(work_items.router, prefix="/api/v1/work-items")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "Trackwise Core API",
        "version": __version__,
        "docs": "/docs",
        "description": "Project tracking: hierarchical work items with audit history",
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
