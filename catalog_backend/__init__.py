"""
Shared catalog backend library code.

This package holds the content aggregation engine that is reused across:
- the FastAPI app in `api/`
- operational scripts in `scripts/`

App entrypoints (FastAPI routers, CLI scripts) should live outside this package and
import from `catalog_backend` rather than the other way around.
"""
