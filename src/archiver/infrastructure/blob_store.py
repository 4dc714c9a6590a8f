"""
archiver.infrastructure.blob_store - Remote Object Store Clients
==================================================================

This module provides the blob store abstraction the archiver uploads versions
to and resolves pointer records from. A blob store is a flat key/value object
store: `put(key, bytes)`, `get(key) -> byte stream`. It offers no atomicity
across keys, so the archiver never relies on multi-key transactions.

Architecture Context:

    ┌──────────────┐  put(content)      ┌──────────────────────┐
    │  Archiver    │ ─────────────────→ │                      │
    │              │ ←───────────────── │      BlobStore        │
    └──────────────┘  get(content)      │                      │
    ┌──────────────┐  put/get(pointer)  │  InMemoryBlobStore   │
    │ VersionMgr   │ ←────────────────→ │  FilesystemBlobStore │
    └──────────────┘                    │  S3BlobStore         │
                                        └──────────────────────┘

Error Contract:
    - Missing key            → NotFoundError
    - Any other I/O failure  → StorageError, including failures while
                               reading a stream returned by get() (BlobReader)

Usage:
    >>> store = create_blob_store(BlobStoreConfig(type="memory"))
    >>> store.put("search/idx1/a1b2", b"...")
    >>> with closing(store.get("search/idx1/a1b2")) as stream:
    ...     data = stream.read()
"""

from __future__ import annotations

import io
import os
import shutil
import threading
from abc import ABC, abstractmethod
from contextlib import closing
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, BinaryIO, Optional

import boto3
import structlog
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from archiver.core.config import BlobStoreConfig
from archiver.core.enums import BlobStoreType
from archiver.core.exceptions import ConfigurationError, NotFoundError, StorageError


# =============================================================================
# Logger
# =============================================================================
logger = structlog.get_logger()

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


# =============================================================================
# Stream Wrapper
# =============================================================================
# A connection reset or read timeout halfway through a large download is a
# storage failure, not a local disk failure. Every stream handed out by
# get() goes through BlobReader so callers see StorageError for it.
# =============================================================================
class BlobReader:
    """Read-only byte stream over a blob that reports read failures as StorageError.

    Attributes:
        key: The blob key being read.
    """

    def __init__(self, raw: Any, key: str) -> None:
        self._raw = raw
        self.key = key

    def read(self, size: Optional[int] = -1) -> bytes:
        try:
            if size is None or size < 0:
                return self._raw.read()
            return self._raw.read(size)
        except (OSError, BotoCoreError) as exc:
            raise StorageError(
                message=f"Failed while reading blob {self.key}: {exc}",
                key=self.key,
                error_code="STREAM_READ_FAILED",
            ) from exc

    def readable(self) -> bool:
        return True

    def close(self) -> None:
        self._raw.close()

    def __enter__(self) -> BlobReader:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


# =============================================================================
# Abstract Base Class
# =============================================================================
class BlobStore(ABC):
    """Abstract interface for the remote object store.

    Implementations are blocking; the async facade runs them on its
    worker pool.

    Methods:
        put(key, data): Store bytes under a key, replacing any previous value.
        put_file(key, path): Store a local file's contents without loading it
            fully into memory where the backend allows.
        get(key): Open a readable byte stream. The caller closes it.
        exists(key): Whether a key is present.
        read_text(key): Read a small UTF-8 record (pointer payloads).
    """

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        """Store `data` under `key`.

        Raises:
            StorageError: If the write fails.
        """

    @abstractmethod
    def get(self, key: str) -> BlobReader:
        """Open the object stored under `key` for reading.

        Read failures on the returned stream raise StorageError.

        Raises:
            NotFoundError: If the key does not exist.
            StorageError: If the read fails for any other reason.
        """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return True if `key` is present in the store."""

    def put_file(self, key: str, path: Path) -> None:
        """Store the contents of a local file under `key`."""
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise StorageError(
                message=f"Failed to read local file for upload: {path}",
                key=key,
                error_code="LOCAL_READ_FAILED",
                details={"path": str(path)},
            ) from exc
        self.put(key, data)

    def read_text(self, key: str) -> str:
        """Read a UTF-8 record and return it with surrounding whitespace stripped."""
        with closing(self.get(key)) as stream:
            payload = stream.read()
        try:
            return payload.decode("utf-8").strip()
        except UnicodeDecodeError as exc:
            raise StorageError(
                message=f"Record is not valid UTF-8: {key}",
                key=key,
                error_code="INVALID_RECORD",
            ) from exc


# =============================================================================
# In-Memory Implementation
# =============================================================================
class InMemoryBlobStore(BlobStore):
    """Dict-backed blob store for development and testing.

    Not shared between processes and lost on exit. Thread-safe within one
    process so it can back concurrent downloads in tests.
    """

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()
        self._logger = logger.bind(component="in_memory_blob_store")

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[key] = bytes(data)
        self._logger.debug("blob_put", key=key, size=len(data))

    def get(self, key: str) -> BlobReader:
        with self._lock:
            data = self._objects.get(key)
        if data is None:
            raise NotFoundError(
                message=f"Key not found in blob store: {key}",
                error_code="KEY_NOT_FOUND",
                details={"key": key},
            )
        return BlobReader(io.BytesIO(data), key)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys with the given prefix, sorted."""
        with self._lock:
            return sorted(k for k in self._objects if k.startswith(prefix))


# =============================================================================
# Filesystem Implementation
# =============================================================================
# Maps each key onto a path under a root directory. Writes go to a temp file
# in the destination directory followed by os.replace(), so readers see
# either the old object or the new one, never a partial write.
# =============================================================================
class FilesystemBlobStore(BlobStore):
    """Blob store backed by a local or shared directory.

    Attributes:
        root: Directory under which keys are stored as relative paths.
    """

    def __init__(self, root: Path, *, fsync_writes: bool = True) -> None:
        self._root = Path(root)
        self._fsync_writes = fsync_writes
        self._logger = logger.bind(component="filesystem_blob_store")

    @property
    def root(self) -> Path:
        return self._root

    def _path_for(self, key: str) -> Path:
        parts = key.split("/")
        if not key or any(part in ("", ".", "..") for part in parts):
            raise StorageError(
                message=f"Invalid blob key: {key!r}",
                key=key,
                error_code="INVALID_KEY",
            )
        return self._root.joinpath(*parts)

    def _write_atomically(self, key: str, write: Any) -> None:
        path = self._path_for(key)
        tmp_path: Optional[Path] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with NamedTemporaryFile(
                mode="wb",
                prefix=f".{path.name}-",
                suffix=".tmp",
                dir=path.parent,
                delete=False,
            ) as handle:
                tmp_path = Path(handle.name)
                write(handle)
                handle.flush()
                if self._fsync_writes:
                    os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StorageError(
                message=f"Failed to write blob: {key}",
                key=key,
                error_code="WRITE_FAILED",
                details={"path": str(path)},
            ) from exc
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)

    def put(self, key: str, data: bytes) -> None:
        self._write_atomically(key, lambda handle: handle.write(data))
        self._logger.debug("blob_put", key=key, size=len(data))

    def put_file(self, key: str, path: Path) -> None:
        def _copy(handle: BinaryIO) -> None:
            with open(path, "rb") as source:
                shutil.copyfileobj(source, handle)

        self._write_atomically(key, _copy)
        self._logger.debug("blob_put_file", key=key, path=str(path))

    def get(self, key: str) -> BlobReader:
        path = self._path_for(key)
        try:
            return BlobReader(open(path, "rb"), key)
        except FileNotFoundError as exc:
            raise NotFoundError(
                message=f"Key not found in blob store: {key}",
                error_code="KEY_NOT_FOUND",
                details={"key": key, "path": str(path)},
            ) from exc
        except OSError as exc:
            raise StorageError(
                message=f"Failed to open blob: {key}",
                key=key,
                error_code="READ_FAILED",
                details={"path": str(path)},
            ) from exc

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()


# =============================================================================
# S3 Implementation
# =============================================================================
class S3BlobStore(BlobStore):
    """Blob store backed by an S3 bucket (or an S3-compatible endpoint).

    Attributes:
        bucket_name: Bucket holding all content and pointer records.

    Example:
        >>> store = S3BlobStore("search-archives", region="us-west-2")
        >>> store.put_file("search/idx1/a1b2", Path("/tmp/a1b2.tar.gz"))
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        client: Any = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        request_timeout_seconds: float = 30.0,
        max_attempts: int = 5,
    ) -> None:
        self._bucket = bucket_name
        if client is None:
            session = boto3.Session(region_name=region)
            client = session.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                config=BotoConfig(
                    connect_timeout=request_timeout_seconds,
                    read_timeout=request_timeout_seconds,
                    retries={"max_attempts": max_attempts, "mode": "standard"},
                ),
            )
        self._s3 = client
        self._logger = logger.bind(component="s3_blob_store", bucket=bucket_name)

    @property
    def bucket_name(self) -> str:
        return self._bucket

    @staticmethod
    def _is_not_found(err: Exception) -> bool:
        if isinstance(err, ClientError):
            code = err.response.get("Error", {}).get("Code", "")
            return code in _NOT_FOUND_CODES
        return False

    def _storage_error(self, action: str, key: str, exc: Exception) -> StorageError:
        return StorageError(
            message=f"S3 {action} failed for {self._bucket}/{key}: {exc}",
            key=key,
            error_code=f"S3_{action.upper()}_FAILED",
            details={"bucket": self._bucket},
        )

    def put(self, key: str, data: bytes) -> None:
        try:
            self._s3.put_object(Bucket=self._bucket, Key=key, Body=data)
        except (ClientError, BotoCoreError) as exc:
            raise self._storage_error("put", key, exc) from exc
        self._logger.debug("blob_put", key=key, size=len(data))

    def put_file(self, key: str, path: Path) -> None:
        try:
            with open(path, "rb") as body:
                self._s3.put_object(Bucket=self._bucket, Key=key, Body=body)
        except (ClientError, BotoCoreError) as exc:
            raise self._storage_error("put", key, exc) from exc
        except OSError as exc:
            raise StorageError(
                message=f"Failed to read local file for upload: {path}",
                key=key,
                error_code="LOCAL_READ_FAILED",
                details={"path": str(path)},
            ) from exc
        self._logger.debug("blob_put_file", key=key, path=str(path))

    def get(self, key: str) -> BlobReader:
        try:
            resp = self._s3.get_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            if self._is_not_found(exc):
                raise NotFoundError(
                    message=f"Key not found in bucket {self._bucket}: {key}",
                    error_code="KEY_NOT_FOUND",
                    details={"bucket": self._bucket, "key": key},
                ) from exc
            raise self._storage_error("get", key, exc) from exc
        return BlobReader(resp["Body"], key)

    def exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            if self._is_not_found(exc):
                return False
            raise self._storage_error("head", key, exc) from exc
        return True


# =============================================================================
# Factory
# =============================================================================
def create_blob_store(config: BlobStoreConfig) -> BlobStore:
    """Build the blob store selected by `config.type`.

    Raises:
        ConfigurationError: If the filesystem backend has no root_path.
    """
    if config.type == BlobStoreType.MEMORY:
        return InMemoryBlobStore()
    if config.type == BlobStoreType.FILESYSTEM:
        if config.root_path is None:
            raise ConfigurationError(
                message="Filesystem blob store requires blob_store.root_path",
                error_code="MISSING_BLOB_ROOT",
            )
        return FilesystemBlobStore(config.root_path)
    if config.type == BlobStoreType.S3:
        return S3BlobStore(
            config.bucket_name,
            region=config.region,
            endpoint_url=config.endpoint_url,
            request_timeout_seconds=config.request_timeout_seconds,
            max_attempts=config.max_attempts,
        )
    raise ConfigurationError(
        message=f"Unsupported blob store type: {config.type}",
        error_code="UNKNOWN_BLOB_STORE",
        details={"type": str(config.type)},
    )
