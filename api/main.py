"""
Catalog Backend API - FastAPI application.

Provides endpoints for:
- Home categories (trending, top rated, new releases)
- Filtered discovery pages for movies and series
- Title details, search, and genre lists
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import deps
from api.routers import content
from catalog_backend.engine import CatalogEngine
from catalog_backend.utils.env import load_env

logger = logging.getLogger(__name__)


def get_cors_origins() -> list[str]:
    """
    Get CORS allowed origins from environment.
    Set CORS_ALLOW_ORIGINS as comma-separated list of origins.
    Example: CORS_ALLOW_ORIGINS=https://catalog.example.com,http://localhost:5173
    """
    origins_str = os.getenv("CORS_ALLOW_ORIGINS", "")
    if not origins_str:
        return []
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger.info("Starting up Catalog Backend API...")
    load_env()
    engine = CatalogEngine.from_env()
    await engine.start()
    deps.set_engine(engine)
    yield
    # Shutdown
    logger.info("Shutting down Catalog Backend API...")
    deps.set_engine(None)
    await engine.shutdown()


app = FastAPI(
    title="Catalog API",
    description="Movie and series catalog backed by TMDb and OMDb",
    version="0.1.0",
    lifespan=lifespan,
)

# If no origins configured, allows all origins but disables credentials
cors_origins = get_cors_origins()
allow_credentials = len(cors_origins) > 0

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins if cors_origins else ["*"],
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(content.router, prefix="/api/v1")


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "catalog-backend"}


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}
