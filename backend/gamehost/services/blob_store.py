from __future__ import annotations

import contextlib
import hashlib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterator, Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from gamehost.core.config import settings
from gamehost.core.errors import StorageFailure, ValidationFailed


log = logging.getLogger(__name__)

_STORAGE_PREFIXES = ("/storage/", "storage/")


@dataclass(frozen=True)
class StoredBlob:
    path: str
    size_bytes: int
    checksum: str
    head: bytes = b""


def normalize_blob_path(file_path: str) -> str:
    """Map a stored ``file_path`` onto a bare blob key.

    Rows may carry either a public-URL style path (``/storage/games/...``) or
    the bare key (``games/...``).
    """

    p = str(file_path or "").strip().replace("\\", "/")
    for prefix in _STORAGE_PREFIXES:
        if p.startswith(prefix):
            p = p[len(prefix):]
            break
    p = p.lstrip("/")
    parts = PurePosixPath(p).parts
    if not parts or any(part in {"..", "."} for part in parts):
        raise ValidationFailed(f"invalid blob path '{file_path}'")
    return str(PurePosixPath(*parts))


class _HashingReader:
    """File-like wrapper that hashes and counts everything read through it."""

    def __init__(self, stream: BinaryIO, *, max_bytes: int | None = None):
        self._stream = stream
        self._max_bytes = max_bytes
        self.size = 0
        self.head = b""
        self._sha = hashlib.sha256()

    def read(self, n: int = -1) -> bytes:
        chunk = self._stream.read(n)
        if chunk:
            self.size += len(chunk)
            if self._max_bytes is not None and self.size > self._max_bytes:
                raise _SizeExceeded(self.size)
            self._sha.update(chunk)
            if len(self.head) < 8:
                self.head = (self.head + chunk)[:8]
        return chunk

    @property
    def checksum(self) -> str:
        return self._sha.hexdigest()


class _SizeExceeded(Exception):
    pass


class BlobStore(Protocol):
    def store(self, stream: BinaryIO, suggested_path: str, *, max_bytes: int | None = None, content_type: str | None = None) -> StoredBlob: ...

    def exists(self, path: str) -> bool: ...

    def open_for_read(self, path: str) -> BinaryIO: ...

    def local_copy(self, path: str) -> contextlib.AbstractContextManager[Path]: ...

    def delete(self, path: str) -> None: ...

    def public_url(self, path: str) -> str: ...


class LocalBlobStore:
    def __init__(self, base_path: Path, *, chunk_size: int = 1024 * 1024):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.chunk_size = int(chunk_size)

    def _full(self, path: str) -> Path:
        return self.base_path / normalize_blob_path(path)

    def store(self, stream, suggested_path, *, max_bytes=None, content_type=None) -> StoredBlob:
        key = normalize_blob_path(suggested_path)
        dest = self.base_path / key
        reader = _HashingReader(stream, max_bytes=max_bytes)
        tmp_name = None
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile("wb", dir=dest.parent, prefix=".upload-", delete=False) as tmp:
                tmp_name = tmp.name
                shutil.copyfileobj(reader, tmp, self.chunk_size)
            os.replace(tmp_name, dest)
            tmp_name = None
        except _SizeExceeded as e:
            raise ValidationFailed(f"File exceeds the maximum allowed size of {max_bytes} bytes") from e
        except OSError as e:
            log.exception("local blob write failed: key=%s", key)
            raise StorageFailure(f"failed to store blob '{key}': {e}") from e
        finally:
            if tmp_name:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_name)
        return StoredBlob(path=key, size_bytes=reader.size, checksum=reader.checksum, head=reader.head)

    def exists(self, path: str) -> bool:
        return self._full(path).is_file()

    def open_for_read(self, path: str) -> BinaryIO:
        try:
            return self._full(path).open("rb")
        except OSError as e:
            raise StorageFailure(f"failed to open blob '{path}': {e}") from e

    @contextlib.contextmanager
    def local_copy(self, path: str) -> Iterator[Path]:
        yield self._full(path)

    def delete(self, path: str) -> None:
        try:
            self._full(path).unlink(missing_ok=True)
        except OSError as e:
            raise StorageFailure(f"failed to delete blob '{path}': {e}") from e

    def public_url(self, path: str) -> str:
        base = str(settings.public_base_url or "").rstrip("/")
        return f"{base}/storage/{normalize_blob_path(path)}"


def get_s3_client(*, endpoint_url: str | None = None):
    ep = (endpoint_url or "").strip() or None
    # For AWS S3, endpoint_url must be None.
    # For S3-compatible providers (MinIO/R2), endpoint_url is required.
    return boto3.client(
        "s3",
        endpoint_url=ep or (str(settings.s3_endpoint_url or "").strip() or None),
        aws_access_key_id=settings.s3_access_key_id,
        aws_secret_access_key=settings.s3_secret_access_key,
        region_name=settings.s3_region_name,
        config=Config(
            signature_version="s3v4",
            connect_timeout=float(settings.s3_connect_timeout_seconds),
            read_timeout=float(settings.s3_read_timeout_seconds),
            retries={
                "max_attempts": int(settings.s3_max_attempts),
                "mode": "standard",
            },
            max_pool_connections=int(settings.s3_max_pool_connections),
            s3={"addressing_style": str(settings.s3_addressing_style)},
        ),
    )


class S3BlobStore:
    def __init__(self, *, bucket: str, client=None):
        self.bucket = bucket
        self.client = client if client is not None else get_s3_client()

    def store(self, stream, suggested_path, *, max_bytes=None, content_type=None) -> StoredBlob:
        key = normalize_blob_path(suggested_path)
        reader = _HashingReader(stream, max_bytes=max_bytes)
        extra = {"ContentType": content_type} if content_type else None
        try:
            self.client.upload_fileobj(reader, self.bucket, key, ExtraArgs=extra)
        except _SizeExceeded as e:
            self._delete_quietly(key)
            raise ValidationFailed(f"File exceeds the maximum allowed size of {max_bytes} bytes") from e
        except (BotoCoreError, ClientError) as e:
            log.exception("s3 blob write failed: bucket=%s key=%s", self.bucket, key)
            raise StorageFailure(f"failed to store blob '{key}': {e}") from e
        return StoredBlob(path=key, size_bytes=reader.size, checksum=reader.checksum, head=reader.head)

    def exists(self, path: str) -> bool:
        key = normalize_blob_path(path)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code") or "")
            if code in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise StorageFailure(f"failed to stat blob '{key}': {e}") from e

    def open_for_read(self, path: str) -> BinaryIO:
        key = normalize_blob_path(path)
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageFailure(f"failed to open blob '{key}': {e}") from e
        return obj["Body"]

    @contextlib.contextmanager
    def local_copy(self, path: str) -> Iterator[Path]:
        key = normalize_blob_path(path)
        suffix = PurePosixPath(key).suffix
        fd, tmp_name = tempfile.mkstemp(prefix="gamehost-", suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as fh:
                self.client.download_fileobj(self.bucket, key, fh)
            yield Path(tmp_name)
        except (BotoCoreError, ClientError) as e:
            raise StorageFailure(f"failed to download blob '{key}': {e}") from e
        finally:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)

    def delete(self, path: str) -> None:
        key = normalize_blob_path(path)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageFailure(f"failed to delete blob '{key}': {e}") from e

    def _delete_quietly(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except Exception:
            log.warning("s3 cleanup of partial upload failed: key=%s", key)

    def public_url(self, path: str) -> str:
        key = normalize_blob_path(path)
        base = str(settings.s3_public_endpoint_url or settings.s3_endpoint_url or "").rstrip("/")
        return f"{base}/{self.bucket}/{key}"


def get_blob_store() -> BlobStore:
    backend = str(settings.storage_backend or "local").strip().lower()
    if backend == "s3":
        return S3BlobStore(bucket=settings.s3_bucket)
    return LocalBlobStore(settings.resolved_media_root, chunk_size=int(settings.upload_chunk_size))
