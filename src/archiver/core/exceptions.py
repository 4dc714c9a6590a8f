"""
archiver.core.exceptions - Custom Exception Hierarchy
=======================================================

This module defines the structured exception hierarchy for the archiver.
Every failure that crosses a component boundary is raised as one of these
types, carrying a machine-readable error code and a `details` dict with the
service, resource, key or path involved.

Exception Hierarchy:
    ArchiverError (base)
        ├── ConfigurationError  - Archiver root missing, invalid config file
        ├── NotFoundError       - Upload source missing, pointer unset, key missing
        ├── StorageError        - Blob store read/write failures
        ├── CodecError          - Pack/unpack failures (corrupt or truncated stream)
        ├── FilesystemError     - Rename/symlink failures not explained by a race
        └── ArchiverRootMissingError (ConfigurationError + NotFoundError)

Propagation Policy:
    Failures before any externally-visible state change (pointer update,
    `current` swap) propagate to the caller unchanged. Partial local artifacts
    (temp files, temp dirs) are left for a sweep rather than rolled back.

    Archiver.download()
        → NotFoundError   (pointer unresolved)
        → StorageError    (blob fetch failed)
        → CodecError      (stream could not be unpacked)
        → FilesystemError (rename / symlink swap failed)

Usage:
    >>> from archiver.core.exceptions import NotFoundError
    >>> raise NotFoundError(
    ...     message="Pointer not set",
    ...     error_code="POINTER_NOT_FOUND",
    ...     details={"service": "search", "resource": "idx1"},
    ... )
"""

from __future__ import annotations

from typing import Any, Optional


# =============================================================================
# Base Exception
# =============================================================================
# All archiver exceptions inherit from this base class, so callers can catch
# every archiver failure with a single except clause:
#
#   try:
#       archiver.download("search", "idx1")
#   except ArchiverError as e:
#       logger.error(e.message, error_code=e.error_code, details=e.details)
# =============================================================================
class ArchiverError(Exception):
    """Base exception for all archiver errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code (UPPER_SNAKE_CASE).
        details: Arbitrary dict with additional debugging context.

    Example:
        >>> try:
        ...     archiver.upload("search", "idx1", Path("/data/idx1"))
        ... except ArchiverError as e:
        ...     print(f"[{e.error_code}] {e.message}")
    """

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception to a dictionary (for structured logs).

        Returns:
            Dictionary with error_type, message, error_code, and details.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
# Raised when the archiver cannot operate with the configuration it was
# given: the archiver root directory is missing, or a config file is invalid.
# =============================================================================
class ConfigurationError(ArchiverError):
    """Raised when archiver configuration is invalid or incomplete.

    Common Causes:
        - Archiver root directory does not exist at download time
        - Config YAML is not a mapping
        - Unknown blob store type

    Example:
        >>> raise ConfigurationError(
        ...     message="Archiver directory doesn't exist: /var/archiver",
        ...     error_code="ARCHIVER_DIR_MISSING",
        ...     details={"path": "/var/archiver"},
        ... )
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Not Found Error
# =============================================================================
# Raised when something the caller named does not exist: the upload source
# directory, a pointer record, or a blob key.
# =============================================================================
class NotFoundError(ArchiverError):
    """Raised when a source directory, pointer, or blob key does not exist.

    Example:
        >>> raise NotFoundError(
        ...     message="Source directory /data/idx1 does not exist",
        ...     error_code="SOURCE_NOT_FOUND",
        ...     details={"path": "/data/idx1"},
        ... )
    """

    def __init__(
        self,
        message: str,
        error_code: str = "NOT_FOUND",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Storage Error
# =============================================================================
class StorageError(ArchiverError):
    """Raised when a blob store read or write fails.

    Common Causes:
        - Network failure talking to S3
        - Access denied / bucket missing
        - Local disk full (filesystem backend)

    Attributes:
        key: The blob key involved, when known.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        error_code: str = "STORAGE_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if key:
            enriched_details["key"] = key

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.key = key


# =============================================================================
# Codec Error
# =============================================================================
class CodecError(ArchiverError):
    """Raised when a directory tree cannot be packed or a stream unpacked.

    Common Causes:
        - Truncated or corrupt gzip / tar stream
        - Archive member escaping the destination directory
        - Unsupported member type (symlink, device)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CODEC_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Filesystem Error
# =============================================================================
# Raised when a rename or symlink operation fails for a reason other than
# the expected race (target version directory already published by a
# concurrent downloader).
# =============================================================================
class FilesystemError(ArchiverError):
    """Raised when a local rename/symlink/delete operation fails.

    Attributes:
        path: The filesystem path involved, when known.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        error_code: str = "FILESYSTEM_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        if path:
            enriched_details["path"] = path

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.path = path


# =============================================================================
# Archiver Root Missing
# =============================================================================
# The archiver root is configuration, but callers that only check for a
# missing precondition catch NotFoundError. This type satisfies both.
# =============================================================================
class ArchiverRootMissingError(ConfigurationError, NotFoundError):
    """Raised when the configured archiver root directory does not exist."""

    def __init__(
        self,
        message: str,
        error_code: str = "ARCHIVER_DIR_MISSING",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)
