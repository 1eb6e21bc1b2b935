"""
Database helpers for the durable content cache.
"""

from catalog_backend.db.supabase import create_supabase_admin_client

__all__ = [
    "create_supabase_admin_client",
]
