"""FastAPI application entry point for the Doro reply pipeline API."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from doro_platform.app.config import get_settings
from doro_platform.infra.database import init_db
from doro_platform.services.pipeline_monitor import PipelineMonitor
from doro_platform.services.web_search_service import build_web_search_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize the catalog database on startup."""
    await init_db()
    logger.info("Catalog database ready")
    yield


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Doro Platform API",
    lifespan=lifespan,
    debug=settings.debug,
)

# One monitor and one search cache shared by every request
app.state.monitor = PipelineMonitor()
app.state.search = build_web_search_service()

# CORS middleware: allow all origins in debug mode for LAN/IP access
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from doro_platform.app.routes.pipeline import router as pipeline_router

app.include_router(pipeline_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "doro-platform"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "doro_platform.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
