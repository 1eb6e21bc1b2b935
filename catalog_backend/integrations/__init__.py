"""
External system integrations (TMDb, OMDb).

Upstream clients live under this namespace so they stay decoupled from app
entrypoints (`api/`) and operational scripts (`scripts/`).
"""
