"""Resource extraction: decode parsed resources and upload them to storage.

The storage backend is passed in explicitly; nothing here reaches for
the process-wide instance. The MD5 hash of each decoded payload is what
`<en-media hash="...">` elements in note content refer to, so
`extract_resources` returns a hash map for rewriting those references.
"""

import base64
import binascii
import hashlib
import math
from dataclasses import dataclass, field

from notevault.dependencies import ExportFormatError, logger
from notevault.enex.models import Resource
from notevault.storage.base import StorageService, sanitize_filename

MAX_FILENAME_LENGTH = 100

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/ogg": "ogg",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "text/plain": "txt",
    "text/html": "html",
    "text/csv": "csv",
}


@dataclass
class ExtractedResource:
    """A resource after upload."""

    storage_key: str
    url: str
    hash: str  # MD5 of the decoded payload
    filename: str
    mime_type: str
    size: int
    width: int | None = None
    height: int | None = None


@dataclass
class ResourceReference:
    """What an en-media hash resolves to."""

    url: str
    mime_type: str
    filename: str | None = None


@dataclass
class ExtractionResult:
    """Outcome of extracting all resources of a note."""

    extracted: list[ExtractedResource] = field(default_factory=list)
    hash_map: dict[str, ResourceReference] = field(default_factory=dict)
    errors: list[tuple[int, str]] = field(default_factory=list)


def calculate_md5_hash(data: bytes) -> str:
    """Hex MD5 digest, matching the export format's resource hashes."""
    return hashlib.md5(data).hexdigest()


def extension_for_mime(mime_type: str) -> str:
    """File extension for a MIME type ('bin' when unknown)."""
    return MIME_EXTENSIONS.get(mime_type, "bin")


def generate_filename(resource: Resource, hash_value: str) -> str:
    """Generate a unique, filesystem-safe filename for a resource.

    Uses the original file name when the export carries one, suffixed
    with a hash prefix; otherwise derives one from the hash and MIME type.
    """
    original = resource.resource_attributes.file_name if resource.resource_attributes else None
    if original:
        sanitized = sanitize_filename(original)[:MAX_FILENAME_LENGTH]
        base_name, dot, ext = sanitized.rpartition(".")
        if not dot or not base_name:
            base_name, ext = sanitized, extension_for_mime(resource.mime)
        return f"{base_name}_{hash_value[:8]}.{ext}"

    return f"resource_{hash_value[:16]}.{extension_for_mime(resource.mime)}"


def decode_resource_data(resource: Resource) -> bytes:
    """Decode a resource payload to bytes.

    Raises:
        ExportFormatError: If the encoding is unsupported or the payload
            is not valid base64
    """
    if resource.encoding.lower() != "base64":
        raise ExportFormatError(f"Unsupported resource encoding: {resource.encoding}")
    try:
        return base64.b64decode(resource.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ExportFormatError(f"Invalid base64 resource data: {e}") from e


async def extract_resource(
    storage: StorageService,
    resource: Resource,
    user_id: str,
    note_id: str,
) -> ExtractedResource:
    """Decode one resource, upload it and return where it went."""
    data = decode_resource_data(resource)
    hash_value = calculate_md5_hash(data)
    filename = generate_filename(resource, hash_value)
    storage_key = f"attachments/{user_id}/{note_id}/{filename}"

    stored = await storage.upload(data, resource.mime, key=storage_key, filename=filename)
    url = await storage.get_url(stored.key)

    return ExtractedResource(
        storage_key=stored.key,
        url=url,
        hash=hash_value,
        filename=filename,
        mime_type=resource.mime,
        size=len(data),
        width=resource.width,
        height=resource.height,
    )


async def extract_resources(
    storage: StorageService,
    resources: list[Resource],
    user_id: str,
    note_id: str,
) -> ExtractionResult:
    """Extract every resource of a note.

    A failing resource does not stop the others; its index and error
    message are recorded in `errors`.
    """
    result = ExtractionResult()

    for index, resource in enumerate(resources):
        try:
            extracted = await extract_resource(storage, resource, user_id, note_id)
        except Exception as e:
            logger.error(
                "resource_extraction_failed",
                extra={"index": index, "note_id": note_id, "error": str(e)},
            )
            result.errors.append((index, str(e)))
            continue

        result.extracted.append(extracted)
        result.hash_map[extracted.hash] = ResourceReference(
            url=extracted.url,
            mime_type=extracted.mime_type,
            filename=extracted.filename,
        )

    logger.info(
        "resources_extracted",
        extra={"note_id": note_id, "extracted": len(result.extracted), "errors": len(result.errors)},
    )
    return result


async def find_existing_resource(
    storage: StorageService, hash_value: str, user_id: str
) -> str | None:
    """Find a previously uploaded resource by hash prefix.

    Returns:
        URL of the first matching object, or None
    """
    listing = await storage.list_files(prefix=f"attachments/{user_id}/", limit=1000)
    for file in listing.files:
        if hash_value[:8] in file.key:
            return await storage.get_url(file.key)
    return None


def calculate_total_resource_size(resources: list[Resource]) -> int:
    """Estimated decoded size in bytes (base64 is ~4/3 of the binary size)."""
    return sum(math.ceil(len(resource.data) * 0.75) for resource in resources)
