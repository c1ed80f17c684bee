"""S3-compatible storage backend.

Works with AWS S3 and S3-compatible services (MinIO, DigitalOcean Spaces,
Cloudflare R2, ...) through a boto3 client. The SDK is blocking, so every
call runs in a worker thread to keep the event loop free.
"""

import asyncio
from typing import Any
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from notevault.dependencies import logger
from notevault.storage.base import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_URL_EXPIRY,
    StorageService,
    filename_from_key,
    generate_storage_key,
)
from notevault.storage.models import ListResult, StorageFile

KEY_PREFIX = "uploads"
NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


def is_not_found_error(error: Exception) -> bool:
    """Check whether a botocore error means the object does not exist."""
    if not isinstance(error, ClientError):
        return False
    return str(error.response.get("Error", {}).get("Code")) in NOT_FOUND_CODES


class S3StorageService(StorageService):
    """Storage backend for S3-compatible object stores."""

    backend_name = "s3"

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str,
        secret_access_key: str,
        endpoint: str | None = None,
        force_path_style: bool | None = None,
        client: Any = None,
    ):
        """
        Args:
            bucket: Bucket name
            region: Bucket region
            access_key_id: Access key
            secret_access_key: Secret key
            endpoint: Custom endpoint for S3-compatible services
            force_path_style: Use path-style addressing; defaults to True
                when a custom endpoint is given
            client: Pre-built boto3 S3 client (tests)
        """
        self.bucket = bucket
        self.region = region
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        if force_path_style is None:
            force_path_style = bool(endpoint)

        self.client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=self.endpoint,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path" if force_path_style else "auto"},
            ),
        )

    async def upload(
        self,
        data: bytes,
        mime_type: str,
        key: str | None = None,
        filename: str | None = None,
    ) -> StorageFile:
        key = key or generate_storage_key(filename, prefix=KEY_PREFIX)

        await asyncio.to_thread(
            self.client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=mime_type,
        )

        logger.info("storage_upload", extra={"backend": self.backend_name, "key": key, "size": len(data)})
        return self._storage_file(key, data, mime_type, filename)

    async def get(self, key: str) -> bytes | None:
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found_error(e):
                return None
            raise

        body = response.get("Body")
        if body is None:
            return None
        return await asyncio.to_thread(self._read_body, body)

    @staticmethod
    def _read_body(body: Any) -> bytes:
        """Drain a streaming response body into one buffer."""
        try:
            return b"".join(body.iter_chunks())
        finally:
            body.close()

    async def get_url(
        self,
        key: str,
        signed: bool = True,
        expires_in: int = DEFAULT_URL_EXPIRY,
    ) -> str:
        if signed:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )

        # Direct URL; only resolves for publicly readable buckets.
        if self.endpoint:
            return f"{self.endpoint}/{self.bucket}/{quote(key)}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{quote(key)}"

    async def delete(self, key: str) -> bool:
        # S3 deletes succeed silently for absent keys.
        if not await self.exists(key):
            return False
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found_error(e):
                return False
            raise

        logger.info("storage_delete", extra={"backend": self.backend_name, "key": key})
        return True

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            if is_not_found_error(e):
                return False
            raise
        return True

    async def list_files(
        self,
        prefix: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
        cursor: str | None = None,
    ) -> ListResult:
        params: dict[str, Any] = {"Bucket": self.bucket, "MaxKeys": limit}
        if prefix:
            params["Prefix"] = prefix
        if cursor:
            params["ContinuationToken"] = cursor

        response = await asyncio.to_thread(self.client.list_objects_v2, **params)

        # Listings carry no content type.
        files = [
            StorageFile(
                key=item["Key"],
                filename=filename_from_key(item["Key"]),
                size=item.get("Size", 0),
            )
            for item in response.get("Contents", [])
        ]
        return ListResult(
            files=files,
            cursor=response.get("NextContinuationToken"),
            has_more=bool(response.get("IsTruncated", False)),
        )
