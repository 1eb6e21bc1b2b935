from __future__ import annotations

from supabase import Client, create_client

from catalog_backend.config import ConfigurationError
from catalog_backend.utils.env import env_str


def get_supabase_url() -> str:
    url = env_str("SUPABASE_URL")
    if not url:
        raise ConfigurationError("SUPABASE_URL environment variable is not set")
    return url


def get_supabase_service_key() -> str:
    key = env_str("SUPABASE_SERVICE_ROLE_KEY")
    if not key:
        raise ConfigurationError("SUPABASE_SERVICE_ROLE_KEY environment variable is not set")
    return key


def create_supabase_admin_client(*, url: str | None = None, service_role_key: str | None = None) -> Client:
    """
    Create a Supabase client using the service role key (bypasses RLS).

    The content cache table is written by the engine only, so it uses the admin client.
    """

    return create_client(url or get_supabase_url(), service_role_key or get_supabase_service_key())
