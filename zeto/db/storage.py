"""Object store access (Supabase Storage)."""

import asyncio
from typing import Any

from zeto.core.logging import get_logger
from zeto.db.supabase_client import SupabaseDatabase

logger = get_logger(__name__)


class ObjectStore:
    """Upload, sign and delete blobs in one storage bucket."""

    def __init__(self, database: SupabaseDatabase, bucket: str):
        self._db = database
        self.bucket = bucket

    def _bucket(self) -> Any:
        return self._db.client.storage.from_(self.bucket)

    async def upload(self, path: str, data: bytes, content_type: str | None = None) -> str:
        """Upload bytes at ``path`` and return the path."""

        def _upload() -> Any:
            return self._bucket().upload(
                path=path,
                file=data,
                file_options={
                    "content-type": content_type or "application/octet-stream",
                    "upsert": "true",
                },
            )

        await asyncio.to_thread(_upload)
        logger.info(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")
        return path

    async def signed_url(self, path: str, expires_in: int = 3600) -> str | None:
        """Issue a time-limited download URL."""

        def _sign() -> Any:
            return self._bucket().create_signed_url(path, expires_in)

        signed = await asyncio.to_thread(_sign)
        if not signed:
            return None
        return signed.get("signedURL") or signed.get("signedUrl")

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(lambda: self._bucket().remove([path]))
        logger.info(f"Deleted {self.bucket}/{path}")
