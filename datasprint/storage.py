"""
Storage abstraction for S3-compatible object storage and in-memory testing.

One client is bound to one bucket; the app uses a ``datasets`` bucket
(read-only, filled out of band) and a ``submissions`` bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError


class StorageError(Exception):
    """Raised when the storage provider cannot complete an operation."""


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def list_prefix(self, prefix: str) -> list[str]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    bucket: str = "datasets"
    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        # Hosted providers refuse to sign keys that do not exist.
        if path not in self.stored_objects:
            raise StorageError(f"Object not found: {self.bucket}/{path}")
        return f"{self.base_url}/sign/{self.bucket}/{path}?expires={expires_in}"

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        self.stored_objects[path] = data

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/public/{self.bucket}/{path}"

    def list_prefix(self, prefix: str) -> list[str]:
        return sorted(
            key[len(prefix):]
            for key in self.stored_objects
            if key.startswith(prefix) and "/" not in key[len(prefix):]
        )


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (Supabase storage, COS, MinIO, AWS).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            connect_timeout=5,
            read_timeout=10,
            retries={"max_attempts": 1},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        try:
            # Presigning is offline; check the key so missing datasets fail here.
            self._client.head_object(Bucket=self.bucket, Key=path)
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Cannot sign {self.bucket}/{path}: {exc}") from exc

    def upload_bytes(
        self, path: str, data: bytes, content_type: str | None = None
    ) -> None:
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Upload to {self.bucket}/{path} failed: {exc}") from exc

    def public_url(self, path: str) -> str:
        base = self.public_base_url or f"{(self.endpoint or '').rstrip('/')}/{self.bucket}"
        return f"{base.rstrip('/')}/{path}"

    def list_prefix(self, prefix: str) -> list[str]:
        names: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=self.bucket, Prefix=prefix, Delimiter="/"
            ):
                for item in page.get("Contents", []):
                    names.append(item["Key"][len(prefix):])
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Cannot list {self.bucket}/{prefix}: {exc}") from exc
        return sorted(name for name in names if name)
