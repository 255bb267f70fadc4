import logging
from typing import Optional

from supabase import create_client, Client
from app.config import settings

logger = logging.getLogger(__name__)


def _connect(key: Optional[str]) -> Client:
    if not settings.supabase_url or not key:
        raise RuntimeError("SUPABASE_URL and a Supabase key must be configured")
    return create_client(settings.supabase_url, key)


class SupabaseClient:
    """Process-wide Supabase clients: one per key, created on first use."""

    _client: Optional[Client] = None
    _service_client: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        if cls._client is None:
            cls._client = _connect(settings.supabase_key)
        return cls._client

    @classmethod
    def get_service_client(cls) -> Client:
        """Service-role client for the sync scheduler and the seed script; bypasses RLS."""
        if cls._service_client is None:
            if not settings.supabase_service_role_key:
                logger.warning("SUPABASE_SERVICE_ROLE_KEY not set; background work runs with the anon key")
                return cls.get_client()
            cls._service_client = _connect(settings.supabase_service_role_key)
        return cls._service_client

    @classmethod
    def reset_client(cls):
        cls._client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_client()


def get_service_supabase() -> Client:
    return SupabaseClient.get_service_client()
