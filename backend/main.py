"""
FastAPI application entry point
"""

import sys
import logging
import traceback
from pathlib import Path

# Add parent directory to path so we can import labelbench
sys.path.insert(0, str(Path(__file__).parent.parent))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

import labelbench
from labelbench.errors import LabelBenchError, NotFoundError
from backend.config import CORS_ORIGINS, API_HOST, API_PORT, LOG_LEVEL
from backend.api import projects, classes, interchange, roles, labeling, validate

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("LabelBench API starting...")
    yield
    # Shutdown
    logger.info("LabelBench API shutting down...")


app = FastAPI(
    title="LabelBench API",
    description="Annotation taxonomy, interchange and dataset partitioning API",
    version=labelbench.__version__,
    lifespan=lifespan,
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(LabelBenchError)
async def labelbench_error_handler(request: Request, exc: LabelBenchError):
    logger.warning(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log all unhandled exceptions with full traceback."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}:")
    logger.error(traceback.format_exc())
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(projects.router, prefix="/api/projects", tags=["Projects"])
app.include_router(classes.router, prefix="/api/classes", tags=["Classes"])
app.include_router(interchange.router, prefix="/api/interchange", tags=["Interchange"])
app.include_router(roles.router, prefix="/api/roles", tags=["Roles"])
app.include_router(labeling.router, prefix="/api/labeling", tags=["Labeling"])
app.include_router(validate.router, prefix="/api/validate", tags=["Validation"])


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "labelbench-api"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
