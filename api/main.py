"""
FastAPI Backend for the Lesson Library curation tools.

Serves the duplicate review workflow used by the admin review screen.
"""

import logging
import os
import subprocess

from dotenv import load_dotenv

load_dotenv()

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from api.routes import duplicates
from curation.config import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting Lesson Library curation API...")
    if not get_settings().api.service_key:
        logger.warning("API_SERVICE_KEY not set - only reviewer users can call the API")
    if not get_settings().api.gateway_key:
        logger.warning("API_GATEWAY_KEY not set - user identities from X-User-Id are ignored")
    yield
    # Shutdown
    logger.info("Shutting down...")


app = FastAPI(
    title="Lesson Library Curation API",
    description="Duplicate lesson detection and resolution",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS - allow the admin frontend to connect (configured via API_CORS_ORIGINS env var)
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-User-Id", "X-Requested-With"],
)

# Group listings carry lesson previews; compress anything over 500 bytes
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(duplicates.router, prefix="/api/duplicates", tags=["duplicates"])


def _get_build_hash() -> str:
    """Get build hash from env var or git."""
    env_hash = os.environ.get("BUILD_HASH")
    if env_hash:
        return env_hash
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
        ).decode().strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


BUILD_HASH = _get_build_hash()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "version": "1.0.0", "commit": BUILD_HASH, "service": "Lesson Library Curation API"}
