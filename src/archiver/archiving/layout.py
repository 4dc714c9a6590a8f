"""
archiver.archiving.layout - Local Resource Directory Layout
=============================================================

The LocalLayout owns the on-disk structure under the archiver root:

    <root>/
        <resource>/
            current             → symlink to "<version_id>" (relative)
            <version_id>/       fully materialized version tree
            <token>.tmp         transient: in-flight temp dir, file, or link

Publication Rules:
    1. A version directory only ever appears through a single rename of a
       fully populated temp directory. It is never written in place.
    2. `current` only ever changes through a rename of a freshly created
       temp symlink onto it. Readers see the old target or the new one.
    3. Cleanup deletes only directories whose name is a version id and which
       are neither the version being kept nor the target of `current`.
       Temp entries and unexpected names are left alone.

None of these steps take a lock; concurrent downloaders (threads or
processes) rely on rename atomicity alone.
"""

from __future__ import annotations

import os
import shutil
import string
import time
from pathlib import Path
from typing import Callable, Optional
from uuid import uuid4

import structlog

from archiver.core.enums import CleanupAction
from archiver.core.exceptions import ArchiverRootMissingError, FilesystemError
from archiver.core.models import CleanupResult


logger = structlog.get_logger()

CURRENT_VERSION_NAME = "current"
TMP_SUFFIX = ".tmp"

_HEX_DIGITS = frozenset(string.hexdigits)


# =============================================================================
# Version Identifiers
# =============================================================================
def new_version_id() -> str:
    """Generate a fresh random version identifier (32 lowercase hex chars).

    Identifiers are unique per upload, not per content: uploading the same
    tree twice yields two different versions.
    """
    return uuid4().hex


def is_hex_version_name(name: str) -> bool:
    """Default version-name predicate: a non-empty, even-length hex string."""
    return bool(name) and len(name) % 2 == 0 and all(c in _HEX_DIGITS for c in name)


def new_tmp_name() -> str:
    return f"{uuid4()}{TMP_SUFFIX}"


# =============================================================================
# Local Layout
# =============================================================================
class LocalLayout:
    """Manages resource directories under the archiver root.

    Attributes:
        root: The archiver root directory.

    Args:
        root: Archiver root directory. Must exist before any download.
        is_version_name: Predicate deciding which entry names cleanup may
            treat as version directories. Defaults to a hex check matching
            new_version_id().
    """

    def __init__(
        self,
        root: Path,
        is_version_name: Callable[[str], bool] = is_hex_version_name,
    ) -> None:
        self._root = Path(root)
        self._is_version_name = is_version_name
        self._logger = logger.bind(component="local_layout", root=str(self._root))

    @property
    def root(self) -> Path:
        return self._root

    def is_version_name(self, name: str) -> bool:
        return self._is_version_name(name)

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------
    def ensure_root(self) -> None:
        """Raise ArchiverRootMissingError unless the root directory exists."""
        if not self._root.is_dir():
            raise ArchiverRootMissingError(
                message=f"Archiver directory doesn't exist: {self._root}",
                details={"path": str(self._root)},
            )

    def resource_dir(self, resource: str) -> Path:
        _check_segment(resource, "resource")
        return self._root / resource

    def version_dir(self, resource: str, version_id: str) -> Path:
        _check_segment(version_id, "version_id")
        if version_id == CURRENT_VERSION_NAME or version_id.endswith(TMP_SUFFIX):
            raise FilesystemError(
                message=f"Version id collides with a reserved name: {version_id!r}",
                error_code="RESERVED_VERSION_NAME",
                details={"version_id": version_id},
            )
        return self.resource_dir(resource) / version_id

    def current_link(self, resource: str) -> Path:
        return self.resource_dir(resource) / CURRENT_VERSION_NAME

    def tmp_path(self, directory: Path) -> Path:
        """A fresh temp-named path inside `directory` (nothing is created)."""
        return Path(directory) / new_tmp_name()

    def current_version(self, resource_dir: Path) -> Optional[str]:
        """Name of the version `current` points at, or None if unset."""
        try:
            return Path(os.readlink(Path(resource_dir) / CURRENT_VERSION_NAME)).name
        except OSError:
            return None

    def has_version(self, version_dir: Path) -> bool:
        """True if `version_dir` is a published version directory.

        Raises:
            FilesystemError: If something other than a real directory
                (a file or a link) occupies the version name.
        """
        version_dir = Path(version_dir)
        if not os.path.lexists(version_dir):
            return False
        if version_dir.is_symlink() or not version_dir.is_dir():
            raise FilesystemError(
                message=f"Version path is occupied by something other than a directory: {version_dir}",
                path=str(version_dir),
                error_code="VERSION_PATH_NOT_DIRECTORY",
            )
        return True

    # -------------------------------------------------------------------------
    # Atomic Publication
    # -------------------------------------------------------------------------
    def publish_directory(self, version_dir: Path, populate: Callable[[Path], None]) -> bool:
        """Materialize `version_dir` by populating a temp dir and renaming it.

        Args:
            version_dir: Final version directory path.
            populate: Called with the temp directory path; must fill it.

        Returns:
            True if this call published the directory, False if it already
            existed (before starting or because a concurrent publisher won).

        Raises:
            FilesystemError: If the rename fails for any other reason.
            Whatever `populate` raises; the temp directory is discarded.
        """
        version_dir = Path(version_dir)
        if self.has_version(version_dir):
            self._logger.info("version_dir_exists", path=str(version_dir))
            return False

        parent = version_dir.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FilesystemError(
                message=f"Failed to create resource directory {parent}: {exc}",
                path=str(parent),
                error_code="MKDIR_FAILED",
            ) from exc

        tmp_dir = self.tmp_path(parent)
        try:
            populate(tmp_dir)
            try:
                os.rename(tmp_dir, version_dir)
            except OSError as exc:
                if self.has_version(version_dir):
                    self._logger.info("version_dir_published_concurrently", path=str(version_dir))
                    return False
                raise FilesystemError(
                    message=f"Failed to move {tmp_dir} into place at {version_dir}: {exc}",
                    path=str(version_dir),
                    error_code="RENAME_FAILED",
                    details={"tmp_path": str(tmp_dir)},
                ) from exc
            return True
        finally:
            if os.path.lexists(tmp_dir):
                self._remove_quietly(tmp_dir)

    def swap_current(self, resource_dir: Path, version_name: str) -> Path:
        """Atomically repoint `current` at `version_name` (a relative target).

        Returns:
            The path of the `current` link.

        Raises:
            FilesystemError: If the symlink cannot be created or renamed.
        """
        resource_dir = Path(resource_dir)
        current = resource_dir / CURRENT_VERSION_NAME
        tmp_link = self.tmp_path(resource_dir)
        try:
            os.symlink(version_name, tmp_link)
            os.replace(tmp_link, current)
        except OSError as exc:
            raise FilesystemError(
                message=f"Failed to point {current} at {version_name}: {exc}",
                path=str(current),
                error_code="SYMLINK_SWAP_FAILED",
                details={"version": version_name, "tmp_path": str(tmp_link)},
            ) from exc
        finally:
            if os.path.lexists(tmp_link):
                self._remove_quietly(tmp_link)
        self._logger.info("current_swapped", path=str(current), version=version_name)
        return current

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------
    def cleanup(self, resource_dir: Path, keep_version: str) -> CleanupResult:
        """Delete stale version directories under `resource_dir`.

        An entry is removed iff it is a real directory (not a link), its name
        is a version name, and it is neither `keep_version` nor the target
        of `current`. Deletion failures are recorded and logged; they never
        abort the pass.

        A concurrent download may have resolved an older version that this
        pass deletes before that download swaps `current` onto it. The
        swapping side detects the missing directory and retries (see
        Archiver.download); cleanup itself takes no lock.
        """
        resource_dir = Path(resource_dir)
        result = CleanupResult()
        protected = {CURRENT_VERSION_NAME, keep_version}
        current_target = self.current_version(resource_dir)
        if current_target:
            protected.add(current_target)

        with os.scandir(resource_dir) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            name = entry.name
            if name in protected:
                result.record(name, CleanupAction.SKIPPED, "in use")
                continue
            if not entry.is_dir(follow_symlinks=False):
                self._logger.warning("cleanup_unexpected_non_directory", entry=name)
                result.record(name, CleanupAction.SKIPPED, "not a directory")
                continue
            if not self._is_version_name(name):
                self._logger.warning("cleanup_skipped_unrecognized_name", entry=name)
                result.record(name, CleanupAction.SKIPPED, "not a version name")
                continue

            self._logger.info("cleanup_removing_version", entry=name)
            try:
                shutil.rmtree(entry.path)
            except OSError as exc:
                self._logger.error("cleanup_remove_failed", entry=name, error=str(exc))
                result.record(name, CleanupAction.FAILED, str(exc))
            else:
                result.record(name, CleanupAction.REMOVED)
        return result

    def sweep_temp_entries(self, directory: Path, older_than_seconds: float = 0.0) -> list[str]:
        """Remove orphaned temp entries left by interrupted operations.

        Only entries ending in the temp suffix whose mtime is at least
        `older_than_seconds` old are touched. Returns the removed names.
        """
        directory = Path(directory)
        if not directory.is_dir():
            return []
        cutoff = time.time() - older_than_seconds
        removed: list[str] = []
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            if not entry.name.endswith(TMP_SUFFIX):
                continue
            try:
                if entry.stat(follow_symlinks=False).st_mtime > cutoff:
                    continue
            except OSError:
                continue
            if self._remove_quietly(Path(entry.path)):
                removed.append(entry.name)
        if removed:
            self._logger.info("temp_entries_swept", directory=str(directory), count=len(removed))
        return removed

    def _remove_quietly(self, path: Path) -> bool:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except OSError as exc:
            self._logger.warning("temp_remove_failed", path=str(path), error=str(exc))
            return False
        return True


def _check_segment(value: str, field: str) -> None:
    if not value or value in (".", "..") or "/" in value or os.sep in value:
        raise FilesystemError(
            message=f"Invalid {field} for a local path segment: {value!r}",
            error_code="INVALID_PATH_SEGMENT",
            details={field: value},
        )
