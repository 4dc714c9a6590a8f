"""
archiver.infrastructure.version_manager - Pointer Store
=========================================================

The VersionManager resolves named pointers for a resource and moves the
`_latest_version` pointer when a version is blessed. Pointer records are
small plain-text objects kept in the same blob store as the content:

    <service>/_version/<resource>/_latest_version   →  "3"
    <service>/_version/<resource>/3                 →  "9f86d081884c7d65..."
    <service>/<resource>/9f86d081884c7d65...        →  packed content

Blessing Protocol:
    `_latest_version` holds a counter n. Blessing version V writes the
    redirect record n+1 → V first, then moves `_latest_version` to n+1.
    Each record is a single-key write, so a reader resolving the pointer
    sees either the previous counter (whose redirect is untouched) or the
    new one (whose redirect already exists). Concurrent blesses of the same
    resource are last-writer-wins.

The pointer is never cached: every call re-reads the store.
"""

from __future__ import annotations

import threading

import structlog

from archiver.core.exceptions import NotFoundError, StorageError
from archiver.core.models import LATEST_VERSION_POINTER, ResourceKey
from archiver.infrastructure.blob_store import BlobStore


logger = structlog.get_logger()


class VersionManager:
    """Resolves and updates version pointers stored in a BlobStore.

    Example:
        >>> vm = VersionManager(blob_store)
        >>> vm.bless_version("search", "idx1", version_id)
        True
        >>> vm.resolve_latest("search", "idx1") == version_id
        True
    """

    def __init__(self, blob_store: BlobStore) -> None:
        self._blob_store = blob_store
        # Serializes blesses issued through this instance; cross-process
        # blesses still race as last-writer-wins.
        self._bless_lock = threading.Lock()
        self._logger = logger.bind(component="version_manager")

    def resolve(self, service_name: str, resource: str, pointer_name: str) -> str:
        """Read the value of one pointer or redirect record.

        Raises:
            NotFoundError: If the record is unset or empty.
            StorageError: If the blob store read fails.
        """
        key = ResourceKey(service_name=service_name, resource=resource).pointer_key(pointer_name)
        try:
            value = self._blob_store.read_text(key)
        except NotFoundError as exc:
            raise NotFoundError(
                message=f"Pointer {pointer_name} is not set for {service_name}/{resource}",
                error_code="POINTER_NOT_FOUND",
                details={
                    "service": service_name,
                    "resource": resource,
                    "pointer": pointer_name,
                    "key": key,
                },
            ) from exc
        if not value:
            raise NotFoundError(
                message=f"Pointer {pointer_name} is empty for {service_name}/{resource}",
                error_code="POINTER_EMPTY",
                details={"service": service_name, "resource": resource, "key": key},
            )
        return value

    def resolve_latest(self, service_name: str, resource: str) -> str:
        """Resolve `_latest_version` through its redirect to a version id."""
        latest = self.resolve(service_name, resource, LATEST_VERSION_POINTER)
        return self.resolve(service_name, resource, latest)

    def get_latest_version_number(self, service_name: str, resource: str) -> int:
        """Current value of the `_latest_version` counter, or -1 if never blessed.

        Raises:
            StorageError: If the pointer holds something other than an integer.
        """
        try:
            raw = self.resolve(service_name, resource, LATEST_VERSION_POINTER)
        except NotFoundError:
            return -1
        try:
            return int(raw)
        except ValueError as exc:
            raise StorageError(
                message=f"Corrupt {LATEST_VERSION_POINTER} record for {service_name}/{resource}: {raw!r}",
                error_code="CORRUPT_POINTER",
                details={"service": service_name, "resource": resource},
            ) from exc

    def bless_version(self, service_name: str, resource: str, version_id: str) -> bool:
        """Make `version_id` the latest version of the resource.

        Returns:
            True if the pointer now references `version_id`; False if no
            content was ever uploaded under that version id.

        Raises:
            StorageError: If a pointer write fails.
        """
        key = ResourceKey(service_name=service_name, resource=resource)
        content_key = key.content_key(version_id)
        if not self._blob_store.exists(content_key):
            self._logger.warning(
                "bless_rejected_missing_content",
                service=service_name,
                resource=resource,
                version_id=version_id,
                key=content_key,
            )
            return False

        with self._bless_lock:
            next_number = self.get_latest_version_number(service_name, resource) + 1
            self._blob_store.put(key.pointer_key(str(next_number)), version_id.encode("utf-8"))
            self._blob_store.put(
                key.pointer_key(LATEST_VERSION_POINTER),
                str(next_number).encode("utf-8"),
            )

        self._logger.info(
            "version_blessed",
            service=service_name,
            resource=resource,
            version_id=version_id,
            version_number=next_number,
        )
        return True
