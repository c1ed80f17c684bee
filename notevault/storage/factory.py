"""Storage backend factory.

Reads the storage configuration from settings, validates that the
selected backend has everything it needs and builds the backend. The
process-wide instance returned by `get_storage_service()` is meant for
the application's composition root; everything else should receive the
service as a parameter.
"""

import threading
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from notevault.config import Settings, get_settings
from notevault.dependencies import StorageConfigError, logger
from notevault.storage.base import StorageService
from notevault.storage.local_storage import LocalStorageService
from notevault.storage.s3_storage import S3StorageService
from notevault.storage.supabase_storage import DEFAULT_BUCKET, SupabaseStorageService

STORAGE_TYPES = ("local", "s3", "supabase")


class LocalStorageConfig(BaseModel):
    """Settings for the local filesystem backend."""

    type: Literal["local"] = "local"
    path: Path
    base_url: str


class S3StorageConfig(BaseModel):
    """Settings for the S3-compatible backend."""

    type: Literal["s3"] = "s3"
    bucket: str
    region: str
    access_key_id: str
    secret_access_key: str
    endpoint: str | None = None
    force_path_style: bool | None = None


class SupabaseStorageConfig(BaseModel):
    """Settings for the Supabase Storage backend."""

    type: Literal["supabase"] = "supabase"
    url: str
    service_key: str
    bucket: str = DEFAULT_BUCKET


StorageConfig = Annotated[
    Union[LocalStorageConfig, S3StorageConfig, SupabaseStorageConfig],
    Field(discriminator="type"),
]


def _require(backend: str, values: dict[str, str | None]) -> None:
    """Raise StorageConfigError naming every missing environment variable."""
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise StorageConfigError(
            f"{backend} storage requires {', '.join(missing)} environment variable"
            f"{'s' if len(missing) > 1 else ''} to be set"
        )


def load_storage_config(settings: Settings | None = None) -> StorageConfig:
    """Build the storage configuration for the selected backend.

    Args:
        settings: Settings to read (defaults to the cached process settings)

    Returns:
        Config model for the backend named by STORAGE_TYPE

    Raises:
        StorageConfigError: If STORAGE_TYPE is unknown or required
            variables for the selected backend are missing
    """
    settings = settings or get_settings()
    storage_type = (settings.storage_type or "local").strip().lower()

    if storage_type == "supabase":
        service_key = settings.supabase_service_role_key or settings.supabase_anon_key
        _require(
            "Supabase",
            {"SUPABASE_URL": settings.supabase_url, "SUPABASE_SERVICE_ROLE_KEY": service_key},
        )
        return SupabaseStorageConfig(
            url=settings.supabase_url,
            service_key=service_key,
            bucket=settings.supabase_bucket,
        )

    if storage_type == "s3":
        _require(
            "S3",
            {
                "S3_BUCKET": settings.s3_bucket,
                "S3_REGION": settings.s3_region,
                "S3_ACCESS_KEY": settings.s3_access_key,
                "S3_SECRET_KEY": settings.s3_secret_key,
            },
        )
        return S3StorageConfig(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key,
            secret_access_key=settings.s3_secret_key,
            endpoint=settings.s3_endpoint or None,
            force_path_style=settings.s3_force_path_style,
        )

    if storage_type == "local":
        path = Path(settings.storage_local_path or "./uploads")
        if not path.is_absolute():
            path = Path.cwd() / path
        return LocalStorageConfig(path=path, base_url=settings.attachments_base_url)

    raise StorageConfigError(
        f"Unknown STORAGE_TYPE '{settings.storage_type}'. Valid types: {', '.join(STORAGE_TYPES)}"
    )


def create_storage_service(config: StorageConfig) -> StorageService:
    """Create the storage backend described by a config."""
    if isinstance(config, SupabaseStorageConfig):
        return SupabaseStorageService(
            url=config.url, service_key=config.service_key, bucket=config.bucket
        )
    if isinstance(config, S3StorageConfig):
        return S3StorageService(
            bucket=config.bucket,
            region=config.region,
            access_key_id=config.access_key_id,
            secret_access_key=config.secret_access_key,
            endpoint=config.endpoint,
            force_path_style=config.force_path_style,
        )
    if isinstance(config, LocalStorageConfig):
        return LocalStorageService(config.path, config.base_url)
    raise StorageConfigError(f"Invalid storage configuration: {config!r}")


# ============================================================
# Process-wide instance
# ============================================================
_storage_instance: StorageService | None = None
_storage_lock = threading.Lock()


def get_storage_service() -> StorageService:
    """Get the configured storage backend, building it on first use."""
    global _storage_instance
    if _storage_instance is None:
        with _storage_lock:
            if _storage_instance is None:
                config = load_storage_config()
                _storage_instance = create_storage_service(config)
                logger.info("storage_initialized", extra={"backend": config.type})
    return _storage_instance


def reset_storage_service() -> None:
    """Drop the cached backend. For test isolation only.

    Instances already handed out keep working.
    """
    global _storage_instance
    with _storage_lock:
        _storage_instance = None


def is_supabase_storage(settings: Settings | None = None) -> bool:
    """Check if the Supabase backend (with CDN image transforms) is selected."""
    settings = settings or get_settings()
    return (settings.storage_type or "local").strip().lower() == "supabase"
