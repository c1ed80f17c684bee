"""Supabase Storage backend.

Uses Supabase Storage for cloud-based file storage with a built-in CDN,
image transformations and edge caching. Objects live in one fixed bucket
and are written with a one-year cache lifetime: a key must never be
reused for different content.

Image transform helpers (`get_transformed_image_url`,
`get_responsive_image_urls`, `get_placeholder_url`) exist only on this
class, not on the StorageService interface.
"""

import asyncio
from collections.abc import Sequence
from typing import Any

from storage3.utils import StorageException
from supabase import ClientOptions, create_client

from notevault.dependencies import logger
from notevault.storage.base import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_URL_EXPIRY,
    StorageService,
    generate_storage_key,
    offset_from_cursor,
)
from notevault.storage.models import ImageTransformOptions, ListResult, StorageFile

DEFAULT_BUCKET = "attachments"
CACHE_CONTROL = "31536000"  # 1 year
RESPONSIVE_WIDTHS = (320, 640, 960, 1280, 1920)


def is_not_found_error(error: Exception) -> bool:
    """Check whether a storage3 error means the object does not exist."""
    if not isinstance(error, StorageException):
        return False
    status = getattr(error, "status", None)
    if str(status) == "404":
        return True
    return "not found" in str(error).lower()


def is_image_file(mime_type: str) -> bool:
    """Check if a MIME type is an image."""
    return mime_type.startswith("image/")


def optimal_image_format(accept_header: str) -> str:
    """Pick the best transform format a client accepts.

    Returns:
        'avif', 'webp' or 'origin'
    """
    if "image/avif" in accept_header:
        return "avif"
    if "image/webp" in accept_header:
        return "webp"
    return "origin"


class SupabaseStorageService(StorageService):
    """Storage backend for Supabase Storage."""

    backend_name = "supabase"

    def __init__(
        self,
        url: str,
        service_key: str,
        bucket: str = DEFAULT_BUCKET,
        client: Any = None,
    ):
        """
        Args:
            url: Supabase project URL
            service_key: Service role key for server-side operations
            bucket: Bucket all objects are stored in
            client: Pre-built Supabase client (tests)
        """
        self.bucket = bucket
        self.client = client or create_client(
            url,
            service_key,
            options=ClientOptions(persist_session=False, auto_refresh_token=False),
        )

    @property
    def _bucket(self) -> Any:
        return self.client.storage.from_(self.bucket)

    async def upload(
        self,
        data: bytes,
        mime_type: str,
        key: str | None = None,
        filename: str | None = None,
    ) -> StorageFile:
        key = key or generate_storage_key(filename)
        await self.store(key, data, content_type=mime_type)
        return self._storage_file(key, data, mime_type, filename)

    async def store(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Write bytes under an explicit key and return the key."""
        await asyncio.to_thread(
            self._bucket.upload,
            key,
            data,
            {
                "content-type": content_type or "application/octet-stream",
                "cache-control": CACHE_CONTROL,
                "upsert": "true",
            },
        )
        logger.info("storage_upload", extra={"backend": self.backend_name, "key": key, "size": len(data)})
        return key

    async def get(self, key: str) -> bytes | None:
        try:
            return await asyncio.to_thread(self._bucket.download, key)
        except StorageException as e:
            if is_not_found_error(e):
                return None
            raise

    async def get_url(
        self,
        key: str,
        signed: bool = True,
        expires_in: int = DEFAULT_URL_EXPIRY,
    ) -> str:
        # Public bucket URL; access control is bucket policy, not URL signing.
        return self._bucket.get_public_url(key)

    async def delete(self, key: str) -> bool:
        try:
            removed = await asyncio.to_thread(self._bucket.remove, [key])
        except StorageException as e:
            if is_not_found_error(e):
                return False
            raise

        deleted = bool(removed)
        if deleted:
            logger.info("storage_delete", extra={"backend": self.backend_name, "key": key})
        return deleted

    async def exists(self, key: str) -> bool:
        try:
            return bool(await asyncio.to_thread(self._bucket.exists, key))
        except StorageException as e:
            if is_not_found_error(e):
                return False
            raise

    async def list_files(
        self,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        cursor: str | None = None,
    ) -> ListResult:
        offset = offset_from_cursor(cursor)
        folder = prefix.strip("/") if prefix else ""

        # One extra entry tells whether another page exists.
        items = await asyncio.to_thread(
            self._bucket.list, folder, {"limit": limit + 1, "offset": offset}
        )
        items = items or []
        has_more = len(items) > limit

        files = []
        for item in items[:limit]:
            # Folder placeholders carry no id.
            if item.get("id") is None:
                continue
            metadata = item.get("metadata") or {}
            files.append(
                StorageFile(
                    key=f"{folder}/{item['name']}" if folder else item["name"],
                    filename=item["name"],
                    mime_type=metadata.get("mimetype") or "application/octet-stream",
                    size=metadata.get("size") or 0,
                )
            )

        return ListResult(
            files=files,
            cursor=str(offset + limit) if has_more else None,
            has_more=has_more,
        )

    # =========================================================================
    # Image transforms (Supabase only)
    # =========================================================================

    def get_transformed_image_url(
        self, key: str, options: ImageTransformOptions | None = None
    ) -> str:
        """Get a CDN URL that resizes/re-encodes an image on the fly.

        Args:
            key: Storage key of the image
            options: Width/height/resize mode/quality/format

        Returns:
            Public URL carrying the transform parameters
        """
        options = options or ImageTransformOptions()
        transform: dict[str, Any] = {"resize": options.resize, "quality": options.quality}
        if options.width:
            transform["width"] = options.width
        if options.height:
            transform["height"] = options.height
        if options.format in ("avif", "webp"):
            transform["format"] = options.format

        return self._bucket.get_public_url(key, {"transform": transform})

    def get_responsive_image_urls(
        self, key: str, widths: Sequence[int] = RESPONSIVE_WIDTHS
    ) -> str:
        """Build a srcset string of transformed URLs at several widths."""
        return ", ".join(
            f"{self.get_transformed_image_url(key, ImageTransformOptions(width=w))} {w}w"
            for w in widths
        )

    def get_placeholder_url(self, key: str) -> str:
        """Tiny low-quality variant for blur-up placeholders."""
        return self.get_transformed_image_url(
            key, ImageTransformOptions(width=20, quality=20, format="webp")
        )
