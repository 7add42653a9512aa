from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import boto3
from botocore.client import Config as BotoConfig

from subtrack.core.config import settings


def resolve_storage_root() -> Path:
    """
    Directory that holds every stored file when the local backend is in use.
    ``SUBTRACK_STORAGE`` overrides the configured value.
    """
    raw = os.getenv("SUBTRACK_STORAGE") or settings.subtrack_storage or "storage"
    return Path(raw).expanduser().resolve()


class StorageBackend(Protocol):
    def save_bytes(self, *, root: str, name: str, data: bytes) -> str:  # returns storage path/URL
        ...

    def load_bytes(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class LocalStorage:
    base_dir: Path

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        candidate = (self.base_dir / path).resolve()
        if self.base_dir not in candidate.parents and candidate != self.base_dir:
            raise ValueError(f"Path {path!r} escapes the storage root")
        return candidate

    def save_bytes(self, *, root: str, name: str, data: bytes) -> str:
        target_dir = self._resolve(root)
        target_dir.mkdir(parents=True, exist_ok=True)
        file_path = target_dir / name
        file_path.write_bytes(data)
        return str(file_path.relative_to(self.base_dir).as_posix())

    def load_bytes(self, path: str) -> bytes:
        file_path = self._resolve(path)
        if not file_path.exists():
            raise FileNotFoundError(f"File {path!r} not found in local storage")
        return file_path.read_bytes()

    def delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)


@dataclass
class S3Storage:
    bucket: str
    client: Any

    @staticmethod
    def _split(path: str) -> tuple[str, str]:
        if not path.startswith("s3://"):
            raise ValueError("Expected s3:// path for S3 storage")
        bucket, key = path[len("s3://"):].split("/", 1)
        return bucket, key

    def save_bytes(self, *, root: str, name: str, data: bytes) -> str:
        key = f"{root.strip('/')}/{name}"
        self.client.put_object(Bucket=self.bucket, Key=key, Body=data)
        return f"s3://{self.bucket}/{key}"

    def load_bytes(self, path: str) -> bytes:
        bucket, key = self._split(path)
        response = self.client.get_object(Bucket=bucket, Key=key)
        body = response.get("Body")
        return body.read() if body else b""

    def delete(self, path: str) -> None:
        bucket, key = self._split(path)
        self.client.delete_object(Bucket=bucket, Key=key)


def get_storage() -> StorageBackend:
    # An explicit local path always wins (tests and local development)
    if os.getenv("SUBTRACK_STORAGE"):
        return LocalStorage(base_dir=resolve_storage_root())

    if settings.s3_endpoint_url and settings.s3_access_key and settings.s3_secret_key and settings.s3_bucket_files:
        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            config=BotoConfig(signature_version="s3v4"),
            region_name=os.getenv("AWS_REGION", "us-east-1"),
        )
        return S3Storage(bucket=settings.s3_bucket_files, client=client)

    return LocalStorage(base_dir=resolve_storage_root())
