"""Supabase Storage adapter for proposal and template PDF blobs.

Provides async download, upload, remove, move and URL generation for byte
blobs addressed by ``(bucket, path)``.  supabase-py is synchronous, so every
network call runs in ``asyncio.to_thread``.

Usage::

    from folio.storage import ObjectStore

    store = ObjectStore.from_settings(settings)
    data = await store.download("proposals", proposal.file_path)
    await store.upload("proposals", proposal.file_path, new_bytes)
"""

import asyncio
import logging
from typing import Optional

from supabase import Client, create_client

from folio.config import Settings
from folio.errors import BlobNotFoundError, StoreError

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def _is_not_found(exc: Exception) -> bool:
    """Best-effort detection of storage3 "object not found" errors."""
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if str(status) == "404":
        return True
    message = str(exc).lower()
    return "not found" in message or "not_found" in message


class ObjectStore:
    """Async wrapper around Supabase Storage buckets."""

    def __init__(self, client: Client) -> None:
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ObjectStore"]:
        if not settings.storage_configured:
            logger.warning(
                "SUPABASE_URL / SUPABASE_SERVICE_KEY not set; "
                "PDF storage operations will fail at call time"
            )
            return None
        return cls(create_client(settings.supabase_url, settings.supabase_service_key))

    def _bucket(self, bucket: str):
        return self._client.storage.from_(bucket)

    async def download(self, bucket: str, path: str) -> bytes:
        """Download a blob, raising BlobNotFoundError if nothing is stored there."""
        try:
            data = await asyncio.to_thread(self._bucket(bucket).download, path)
        except Exception as e:
            if _is_not_found(e):
                raise BlobNotFoundError(f"File not found: {path}") from e
            logger.error("Download failed for %s/%s: %s", bucket, path, e)
            raise StoreError(f"Failed to download {path}") from e
        if not data:
            raise BlobNotFoundError(f"File not found: {path}")
        return data

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = PDF_CONTENT_TYPE,
        upsert: bool = True,
    ) -> None:
        """Upload ``data`` to ``path``; with ``upsert`` an existing blob is overwritten."""
        file_options = {
            "content-type": content_type,
            "upsert": "true" if upsert else "false",
        }
        try:
            await asyncio.to_thread(
                self._bucket(bucket).upload,
                path=path,
                file=data,
                file_options=file_options,
            )
        except Exception as e:
            logger.error("Upload failed for %s/%s: %s", bucket, path, e)
            raise StoreError(f"Failed to upload {path}") from e
        logger.info("Uploaded %d bytes to %s/%s", len(data), bucket, path)

    async def remove(self, bucket: str, paths: list[str]) -> None:
        if not paths:
            return
        try:
            await asyncio.to_thread(self._bucket(bucket).remove, paths)
        except Exception as e:
            logger.error("Remove failed for %s/%s: %s", bucket, paths, e)
            raise StoreError(f"Failed to remove {', '.join(paths)}") from e
        logger.info("Removed %d blob(s) from %s", len(paths), bucket)

    async def move(self, bucket: str, from_path: str, to_path: str) -> None:
        try:
            await asyncio.to_thread(self._bucket(bucket).move, from_path, to_path)
        except Exception as e:
            if _is_not_found(e):
                raise BlobNotFoundError(f"File not found: {from_path}") from e
            logger.error(
                "Move failed in %s: %s -> %s: %s", bucket, from_path, to_path, e
            )
            raise StoreError(f"Failed to move {from_path} to {to_path}") from e

    def get_public_url(self, bucket: str, path: str) -> str:
        return self._bucket(bucket).get_public_url(path)

    async def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        """Generate a time-limited download URL for a private blob."""
        try:
            result = await asyncio.to_thread(
                self._bucket(bucket).create_signed_url, path, ttl_seconds
            )
        except Exception as e:
            if _is_not_found(e):
                raise BlobNotFoundError(f"File not found: {path}") from e
            raise StoreError(f"Failed to sign URL for {path}") from e
        # storage3 has returned both spellings across releases
        url = result.get("signedURL") or result.get("signedUrl")
        if not url:
            raise StoreError(f"Failed to sign URL for {path}")
        return url
