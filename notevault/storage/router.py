"""FastAPI router for /api/attachments.

`GET /api/attachments/{key}` is the retrieval endpoint that local storage
URLs point to. It works against whichever backend is configured.
"""

import mimetypes
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from notevault.dependencies import StorageSecurityError, logger
from notevault.storage.base import StorageService, filename_from_key
from notevault.storage.factory import get_storage_service
from notevault.storage.models import StorageFile

router = APIRouter(prefix="/api/attachments", tags=["attachments"])


def get_storage() -> StorageService:
    """FastAPI dependency provider for the storage backend."""
    return get_storage_service()


@router.get("/{key:path}")
async def download_attachment(
    key: str,
    download: bool = Query(default=False),
    storage: StorageService = Depends(get_storage),
) -> Response:
    """Serve an attachment's bytes.

    Args:
        key: Storage key (URL-encoded by the storage backend)
        download: Send as a file download instead of inline

    Raises:
        HTTPException: 404 if no object exists under the key
    """
    data = await storage.get(key)
    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")

    filename = filename_from_key(key)
    media_type, _ = mimetypes.guess_type(filename)
    headers = {}
    if download:
        headers["Content-Disposition"] = f"attachment; filename*=UTF-8''{quote(filename, safe='')}"

    return Response(
        content=data,
        media_type=media_type or "application/octet-stream",
        headers=headers,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    request: Request,
    filename: str | None = Query(default=None),
    storage: StorageService = Depends(get_storage),
) -> StorageFile:
    """Store the raw request body as a new attachment.

    The request's Content-Type header becomes the stored MIME type.
    """
    data = await request.body()
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload")

    mime_type = request.headers.get("content-type") or "application/octet-stream"
    try:
        stored = await storage.upload(data, mime_type, filename=filename)
    except StorageSecurityError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    logger.info("attachment_uploaded", extra={"key": stored.key, "size": stored.size})
    return stored


@router.delete("/{key:path}")
async def delete_attachment(
    key: str,
    storage: StorageService = Depends(get_storage),
) -> dict[str, bool]:
    """Delete an attachment.

    Raises:
        HTTPException: 404 if nothing was stored under the key
    """
    if not await storage.delete(key):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")
    return {"success": True}
