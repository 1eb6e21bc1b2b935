"""
Dependency injection for the catalog engine.
"""
from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException

from catalog_backend.engine import CatalogEngine

logger = logging.getLogger(__name__)

_engine: CatalogEngine | None = None


def set_engine(engine: CatalogEngine | None) -> None:
    global _engine
    _engine = engine


def get_engine() -> CatalogEngine:
    """
    Returns the engine started by the app lifespan.
    """
    if _engine is None:
        logger.error("Catalog engine requested before startup")
        raise HTTPException(status_code=503, detail="Catalog engine is not running")
    return _engine


# Type alias for dependency injection
Engine = Annotated[CatalogEngine, Depends(get_engine)]
