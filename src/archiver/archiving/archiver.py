"""
archiver.archiving.archiver - Versioned Resource Archiver
===========================================================

The Archiver publishes local directory trees as immutable versions in a blob
store, promotes versions as the canonical one for a resource, and materializes
the canonical version on a serving node as its active copy.

Operations:

    upload(service, resource, source_dir) → version_id
        pack source_dir → <root>/<token>.tmp → put <service>/<resource>/<version_id>
        No pointer is touched; the version is invisible until blessed.

    bless_version(service, resource, version_id) → bool
        Delegates to the VersionManager. The only authority on "latest".

    download(service, resource) → <root>/<resource>/current
        1. resolve _latest_version → n, redirect n → version_id
        2. if <resource>/<version_id> is a directory, skip the fetch
        3. else get blob → unpack into <token>.tmp → rename into place
        4. symlink <token>.tmp → version_id, rename onto `current`
        5. if a concurrent cleanup removed the version meanwhile, go to 1
        6. cleanup stale version directories

Crash Safety:
    An interrupted download leaves at most a temp entry behind. `current`
    keeps pointing at the previous version until step 4's rename lands.
"""

from __future__ import annotations

from contextlib import closing
from pathlib import Path
from typing import Callable, Optional

import structlog

from archiver.archiving.layout import LocalLayout, is_hex_version_name, new_version_id
from archiver.core.exceptions import FilesystemError, NotFoundError
from archiver.core.models import ResourceKey
from archiver.infrastructure.archive_codec import ArchiveCodec, TarGzArchiveCodec
from archiver.infrastructure.blob_store import BlobStore
from archiver.infrastructure.version_manager import VersionManager


logger = structlog.get_logger()

MAX_DOWNLOAD_ATTEMPTS = 3


class Archiver:
    """Uploads, blesses, and downloads versioned resource directories.

    All methods block on network and disk I/O. Run them on a worker pool
    (see ArchiverService) when the caller must stay responsive.

    Attributes:
        archiver_directory: Local root holding one directory per resource.

    Example:
        >>> archiver = Archiver(InMemoryBlobStore(), Path("/var/lib/archiver"))
        >>> v1 = archiver.upload("search", "idx1", Path("/data/idx1"))
        >>> archiver.bless_version("search", "idx1", v1)
        True
        >>> archiver.download("search", "idx1")
        PosixPath('/var/lib/archiver/idx1/current')
    """

    def __init__(
        self,
        blob_store: BlobStore,
        archiver_directory: Path,
        *,
        codec: Optional[ArchiveCodec] = None,
        version_manager: Optional[VersionManager] = None,
        is_version_name: Callable[[str], bool] = is_hex_version_name,
    ) -> None:
        self._blob_store = blob_store
        self._codec = codec or TarGzArchiveCodec()
        self._version_manager = version_manager or VersionManager(blob_store)
        self._layout = LocalLayout(Path(archiver_directory), is_version_name=is_version_name)
        self._logger = logger.bind(component="archiver")

    @property
    def archiver_directory(self) -> Path:
        return self._layout.root

    @property
    def layout(self) -> LocalLayout:
        return self._layout

    @property
    def version_manager(self) -> VersionManager:
        return self._version_manager

    # =========================================================================
    # Upload
    # =========================================================================
    def upload(self, service_name: str, resource: str, source_dir: Path) -> str:
        """Pack `source_dir` and store it as a new immutable version.

        Returns:
            The newly generated version id.

        Raises:
            NotFoundError: If `source_dir` is not an existing directory.
            ArchiverRootMissingError: If the archiver root does not exist.
            CodecError: If packing fails.
            StorageError: If the blob store write fails.
        """
        source_dir = Path(source_dir)
        if not source_dir.is_dir():
            raise NotFoundError(
                message=(
                    f"Source directory {source_dir}, for service {service_name}, "
                    f"and resource {resource} does not exist"
                ),
                error_code="SOURCE_NOT_FOUND",
                details={"service": service_name, "resource": resource, "path": str(source_dir)},
            )
        self._layout.ensure_root()

        key = ResourceKey(service_name=service_name, resource=resource)
        packed_path = self._layout.tmp_path(self._layout.root)
        try:
            self._codec.pack(source_dir, packed_path)
            version_id = new_version_id()
            self._blob_store.put_file(key.content_key(version_id), packed_path)
        finally:
            try:
                packed_path.unlink(missing_ok=True)
            except OSError as exc:
                self._logger.warning("packed_file_remove_failed", path=str(packed_path), error=str(exc))

        self._logger.info(
            "version_uploaded",
            service=service_name,
            resource=resource,
            version_id=version_id,
            source=str(source_dir),
        )
        return version_id

    # =========================================================================
    # Bless
    # =========================================================================
    def bless_version(self, service_name: str, resource: str, version_id: str) -> bool:
        """Mark `version_id` as the latest version of the resource."""
        return self._version_manager.bless_version(service_name, resource, version_id)

    # =========================================================================
    # Download
    # =========================================================================
    def download(self, service_name: str, resource: str) -> Path:
        """Materialize the blessed version locally and make it `current`.

        The cleanup of a concurrent download of a newer version can remove
        the directory this call just pointed `current` at. When the target
        is gone after the swap, the pointer is resolved again and the
        download retried, up to MAX_DOWNLOAD_ATTEMPTS times.

        Returns:
            Path of the resource's `current` link.

        Raises:
            ArchiverRootMissingError: If the archiver root does not exist.
            NotFoundError: If no version has been blessed for the resource.
            StorageError: If the blob fetch fails, including mid-stream.
            CodecError: If the fetched stream cannot be unpacked.
            FilesystemError: If publishing or the `current` swap fails, or
                a non-directory occupies the version name.
        """
        self._layout.ensure_root()

        key = ResourceKey(service_name=service_name, resource=resource)
        resource_dir = self._layout.resource_dir(resource)

        for attempt in range(1, MAX_DOWNLOAD_ATTEMPTS + 1):
            version_id = self._version_manager.resolve_latest(service_name, resource)
            version_dir = self._layout.version_dir(resource, version_id)

            self._logger.info(
                "downloading_resource",
                service=service_name,
                resource=resource,
                version_id=version_id,
                path=str(version_dir),
                attempt=attempt,
            )

            if self._layout.has_version(version_dir):
                self._logger.info("version_already_local", path=str(version_dir))
            else:
                self._layout.publish_directory(
                    version_dir,
                    lambda tmp_dir: self._fetch_into(key, version_id, tmp_dir),
                )

            current = self._layout.swap_current(resource_dir, version_id)
            if version_dir.is_dir():
                break
            self._logger.warning(
                "version_dir_removed_concurrently",
                resource=resource,
                version_id=version_id,
                attempt=attempt,
            )
        else:
            raise FilesystemError(
                message=(
                    f"Version directory for {service_name}/{resource} kept disappearing "
                    f"after {MAX_DOWNLOAD_ATTEMPTS} attempts"
                ),
                path=str(resource_dir),
                error_code="CURRENT_TARGET_VANISHED",
                details={"service": service_name, "resource": resource, "version_id": version_id},
            )

        result = self._layout.cleanup(resource_dir, version_id)
        self._logger.info(
            "cleanup_complete",
            resource=resource,
            removed=result.removed_names,
            skipped=len(result.skipped_names),
            failed=result.failed_names,
        )
        return current

    def _fetch_into(self, key: ResourceKey, version_id: str, dest_dir: Path) -> None:
        with closing(self._blob_store.get(key.content_key(version_id))) as stream:
            self._codec.unpack(stream, dest_dir)
