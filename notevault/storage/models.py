"""Pydantic models shared by all storage backends."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class StorageFile(BaseModel):
    """Metadata snapshot of a stored object.

    Captured at upload time; size and MIME type are not re-verified on
    later reads.

    Attributes:
        key: Opaque storage key the object was written under
        filename: Original (or derived) file name
        mime_type: MIME type given at upload
        size: Size in bytes
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Storage key")
    filename: str = Field(..., description="File name")
    mime_type: str = Field(default="application/octet-stream", description="MIME type")
    size: int = Field(default=0, ge=0, description="Size in bytes")


class ListResult(BaseModel):
    """One page of a storage listing.

    Attributes:
        files: Files on this page
        cursor: Opaque token for the next page (None on the last page)
        has_more: True exactly when more results exist beyond this page
    """

    files: list[StorageFile] = Field(default_factory=list)
    cursor: str | None = None
    has_more: bool = False


class ImageTransformOptions(BaseModel):
    """On-the-fly image transform parameters for the managed store."""

    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    resize: Literal["cover", "contain", "fill"] = "contain"
    quality: int = Field(default=80, ge=1, le=100)
    format: Literal["origin", "avif", "webp"] = "origin"
