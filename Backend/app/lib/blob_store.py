# app/lib/blob_store.py
"""
S3 blob store.

Keys are laid out as `projects/{project_id}/{path}`. boto3 is synchronous, so
every call is pushed onto a worker thread to keep the event loop free.
"""
import asyncio
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import StorageError
from app.core.logging import log


CONTENT_TYPES = {
    "js": "application/javascript",
    "jsx": "application/javascript",
    "ts": "application/typescript",
    "tsx": "application/typescript",
    "json": "application/json",
    "html": "text/html",
    "css": "text/css",
    "md": "text/markdown",
    "txt": "text/plain",
    "py": "text/x-python",
    "java": "text/x-java",
    "cpp": "text/x-c++src",
    "c": "text/x-csrc",
    "go": "text/x-go",
    "rs": "text/x-rustsrc",
    "sh": "application/x-sh",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
}


def content_type_for(path: str) -> str:
    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return CONTENT_TYPES.get(ext, "application/octet-stream")


def project_key(project_id: str, path: str) -> str:
    """Blob key for a project-relative file path."""
    return f"{settings.storage.key_prefix}/{project_id}/{path.lstrip('/')}"


def project_prefix(project_id: str) -> str:
    return f"{settings.storage.key_prefix}/{project_id}/"


class S3BlobStore:
    """put / get / delete / list by key."""

    def __init__(self, bucket: Optional[str] = None, client=None):
        self.bucket = bucket or settings.storage.bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=settings.storage.region,
                aws_access_key_id=settings.storage.access_key_id,
                aws_secret_access_key=settings.storage.secret_access_key,
            )
        return self._client

    async def put(self, key: str, data: bytes, content_type: Optional[str] = None) -> str:
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or content_type_for(key),
            )
        except (BotoCoreError, ClientError) as e:
            log("STORAGE", f"put {key} failed: {e}")
            raise StorageError(key, str(e)) from e
        return key

    async def get(self, key: str) -> bytes:
        def _read() -> bytes:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_read)
        except (BotoCoreError, ClientError) as e:
            log("STORAGE", f"get {key} failed: {e}")
            raise StorageError(key, str(e)) from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            log("STORAGE", f"delete {key} failed: {e}")
            raise StorageError(key, str(e)) from e

    async def list(self, prefix: str) -> List[str]:
        def _list() -> List[str]:
            keys: List[str] = []
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
            return keys

        try:
            return await asyncio.to_thread(_list)
        except (BotoCoreError, ClientError) as e:
            log("STORAGE", f"list {prefix} failed: {e}")
            raise StorageError(prefix, str(e)) from e

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every object under a prefix. Returns the number removed."""
        keys = await self.list(prefix)
        for key in keys:
            await self.delete(key)
        log("STORAGE", f"Removed {len(keys)} objects under {prefix}")
        return len(keys)
