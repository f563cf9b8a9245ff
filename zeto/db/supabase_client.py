"""Supabase client lifecycle.

The client is an explicitly constructed object: build it with
``SupabaseDatabase.from_settings``, call ``connect()`` at startup and
``close()`` at shutdown, and hand it to the repositories that need it.
"""

from supabase import Client, create_client

from zeto.core.config import Settings
from zeto.core.errors import ConfigError
from zeto.core.logging import get_logger

logger = get_logger(__name__)


class SupabaseDatabase:
    """Owns one Supabase client for the lifetime of the application."""

    def __init__(self, url: str, service_role_key: str):
        self._url = url
        self._key = service_role_key
        self._client: Client | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseDatabase":
        """
        Build an (unconnected) database handle from settings.

        Raises:
            ConfigError: If SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is unset
        """
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise ConfigError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be configured.")
        return cls(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """Create the underlying client. Safe to call once."""
        if self._client is not None:
            return
        try:
            self._client = create_client(self._url, self._key)
        except Exception as e:
            raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
        logger.info("Supabase client initialized")

    def close(self) -> None:
        self._client = None

    @property
    def client(self) -> Client:
        if self._client is None:
            raise RuntimeError("SupabaseDatabase.connect() has not been called")
        return self._client
