"""Local filesystem storage backend.

Objects are plain files under a root directory, nested by their key
(`<year>/<month>/<uuid>/<filename>`). URLs point at the application's
attachment retrieval endpoint; serving the bytes is that endpoint's job.
"""

import mimetypes
from pathlib import Path
from urllib.parse import quote

from notevault.dependencies import StorageSecurityError, logger
from notevault.storage.base import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_URL_EXPIRY,
    StorageService,
    generate_storage_key,
    offset_from_cursor,
)
from notevault.storage.models import ListResult, StorageFile


class LocalStorageService(StorageService):
    """Storage backend writing objects to the local filesystem."""

    backend_name = "local"

    def __init__(self, base_path: Path | str, base_url: str = "/api/attachments"):
        """
        Args:
            base_path: Root directory for stored objects
            base_url: Base URL of the attachment retrieval endpoint
        """
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")

    def _validate_path(self, key: str) -> Path:
        """Resolve a key to a path inside the storage root.

        Raises:
            StorageSecurityError: If the key escapes the root
        """
        root = self.base_path.resolve()
        full_path = (root / key).resolve()
        if full_path == root or not full_path.is_relative_to(root):
            raise StorageSecurityError(f"Path traversal detected: {key}")
        return full_path

    async def upload(
        self,
        data: bytes,
        mime_type: str,
        key: str | None = None,
        filename: str | None = None,
    ) -> StorageFile:
        key = key or generate_storage_key(filename)
        full_path = self._validate_path(key)

        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_bytes(data)

        logger.info("storage_upload", extra={"backend": self.backend_name, "key": key, "size": len(data)})
        return self._storage_file(key, data, mime_type, filename)

    async def get(self, key: str) -> bytes | None:
        try:
            return self._validate_path(key).read_bytes()
        except (OSError, StorageSecurityError):
            return None

    async def get_url(
        self,
        key: str,
        signed: bool = True,
        expires_in: int = DEFAULT_URL_EXPIRY,
    ) -> str:
        # Signing options do not apply to the retrieval endpoint.
        return f"{self.base_url}/{quote(key, safe='')}"

    async def delete(self, key: str) -> bool:
        try:
            self._validate_path(key).unlink()
        except (OSError, StorageSecurityError):
            return False
        logger.info("storage_delete", extra={"backend": self.backend_name, "key": key})
        return True

    async def exists(self, key: str) -> bool:
        try:
            return self._validate_path(key).is_file()
        except (OSError, StorageSecurityError):
            return False

    async def list_files(
        self,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        cursor: str | None = None,
    ) -> ListResult:
        try:
            search_path = self._validate_path(prefix) if prefix else self.base_path.resolve()
        except StorageSecurityError:
            return ListResult()

        entries = self._read_dir_recursive(search_path)
        offset = offset_from_cursor(cursor)
        page = entries[offset : offset + limit]
        has_more = len(entries) > offset + limit

        return ListResult(
            files=[self._describe(path) for path in page],
            cursor=str(offset + limit) if has_more else None,
            has_more=has_more,
        )

    def _read_dir_recursive(self, dir_path: Path) -> list[Path]:
        """All files below a directory, sorted by key."""
        if not dir_path.is_dir():
            return []
        return sorted(path for path in dir_path.rglob("*") if path.is_file())

    def _describe(self, path: Path) -> StorageFile:
        key = path.relative_to(self.base_path.resolve()).as_posix()
        mime_type, _ = mimetypes.guess_type(path.name)
        return StorageFile(
            key=key,
            filename=path.name,
            mime_type=mime_type or "application/octet-stream",
            size=path.stat().st_size,
        )
