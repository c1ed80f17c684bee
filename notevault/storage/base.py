"""Abstract base class for storage backends.

All backends must implement this interface. Not-found conditions are
normal results (None / False), never exceptions; every other backend
error propagates unchanged.
"""

import re
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime

from notevault.dependencies import StorageError
from notevault.storage.models import ListResult, StorageFile

# Version of the key layout below. Stored keys are permanent identifiers,
# so any change to the layout needs a new version.
STORAGE_KEY_VERSION = 1

DEFAULT_LIST_LIMIT = 100
DEFAULT_URL_EXPIRY = 3600

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(filename: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def generate_storage_key(filename: str | None = None, prefix: str | None = None) -> str:
    """Generate a unique storage key.

    Keys are partitioned as `[<prefix>/]<year>/<month>/<uuid>[/<filename>]`
    using the current UTC date.

    Example keys:
        2024/01/0b6a2c9e-3f1d-4b8e-9c57-2d1e8f4a6b10/My_Photo.jpg
        uploads/2024/01/0b6a2c9e-3f1d-4b8e-9c57-2d1e8f4a6b10
    """
    now = datetime.now(UTC)
    key = f"{now.year}/{now.month:02d}/{uuid.uuid4()}"
    if prefix:
        key = f"{prefix.strip('/')}/{key}"
    if filename:
        key = f"{key}/{sanitize_filename(filename)}"
    return key


def filename_from_key(key: str) -> str:
    """Last path segment of a key."""
    return key.rstrip("/").rsplit("/", 1)[-1] or key


def offset_from_cursor(cursor: str | None) -> int:
    """Decode an offset cursor issued by an offset-paged listing.

    Raises:
        StorageError: If the cursor is not a non-negative integer
    """
    if not cursor:
        return 0
    try:
        offset = int(cursor)
    except ValueError as e:
        raise StorageError(f"Invalid list cursor: {cursor!r}") from e
    if offset < 0:
        raise StorageError(f"Invalid list cursor: {cursor!r}")
    return offset


class StorageService(ABC):
    """
    Abstract base class for blob storage backends.

    Each backend implementation must:
    1. Implement upload() with overwrite semantics for explicit keys
    2. Implement get(), exists() and delete() treating absent keys as normal
    3. Implement get_url() (URL shape is backend-specific)
    4. Implement list_files() with cursor-based pagination
    """

    backend_name: str = "base"

    @abstractmethod
    async def upload(
        self,
        data: bytes,
        mime_type: str,
        key: str | None = None,
        filename: str | None = None,
    ) -> StorageFile:
        """
        Store bytes and return their metadata.

        Args:
            data: Object contents
            mime_type: MIME type of the contents
            key: Explicit key; generated when omitted. An existing object
                under the same key is overwritten.
            filename: Original file name (defaults to the last key segment)

        Returns:
            StorageFile describing the stored object
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """
        Fetch an object's contents.

        Returns:
            The bytes, or None if no object exists under the key
        """
        pass

    @abstractmethod
    async def get_url(
        self,
        key: str,
        signed: bool = True,
        expires_in: int = DEFAULT_URL_EXPIRY,
    ) -> str:
        """
        Get a URL for accessing an object.

        URL semantics differ by backend; callers must treat the result
        as opaque.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete an object.

        Returns:
            True if something was deleted, False if the key was absent
        """
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object exists under the key."""
        pass

    @abstractmethod
    async def list_files(
        self,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        cursor: str | None = None,
    ) -> ListResult:
        """
        List stored objects.

        Args:
            prefix: Only list keys under this prefix
            limit: Maximum number of files on the page
            cursor: Token from a previous page's ListResult

        Returns:
            ListResult with files, next cursor and has_more
        """
        pass

    def _storage_file(
        self, key: str, data: bytes, mime_type: str, filename: str | None
    ) -> StorageFile:
        """Build the StorageFile returned by upload()."""
        return StorageFile(
            key=key,
            filename=filename or filename_from_key(key),
            mime_type=mime_type,
            size=len(data),
        )
