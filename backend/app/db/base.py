from __future__ import annotations

from functools import lru_cache

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from app.utils.logging import get_logger

logger = get_logger(__name__)


def _client_options() -> ClientOptions:
    # Server-side clients never hold a user session
    return ClientOptions(auto_refresh_token=False, persist_session=False)


@lru_cache(maxsize=4)
def get_admin_supabase_client(url: str, service_role_key: str) -> Client:
    """Return a cached Supabase client using the service role key.

    This client bypasses row-level security. It is used for profile
    reconciliation, item persistence and image storage, where ownership is
    enforced by the services themselves.
    """
    logger.debug("Initializing Supabase admin client")
    if not service_role_key:
        raise RuntimeError("supabase_service_role_key is required for admin client")
    return create_client(url, service_role_key, options=_client_options())


@lru_cache(maxsize=4)
def get_anon_supabase_client(url: str, anon_key: str) -> Client:
    """Return a cached Supabase client using the anon key, used to verify user tokens."""
    logger.debug("Initializing Supabase anon client")
    if not anon_key:
        raise RuntimeError("supabase_anon_key is required for anon client")
    return create_client(url, anon_key, options=_client_options())
