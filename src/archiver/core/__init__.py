"""
archiver.core - Foundation Layer
==================================

Building blocks every other archiver module depends on:

    - config:      Configuration management (ArchiverConfig, BlobStoreConfig)
    - enums:       BlobStoreType, CleanupAction
    - models:      ResourceKey, CleanupEntry, CleanupResult
    - exceptions:  Structured exception hierarchy
    - logging:     structlog configuration

Dependency Rule:
    core/ depends on NOTHING else in the archiver package.
"""

from archiver.core.config import ArchiverConfig, BlobStoreConfig
from archiver.core.enums import BlobStoreType, CleanupAction
from archiver.core.exceptions import (
    ArchiverError,
    ArchiverRootMissingError,
    CodecError,
    ConfigurationError,
    FilesystemError,
    NotFoundError,
    StorageError,
)
from archiver.core.models import CleanupEntry, CleanupResult, ResourceKey

__all__ = [
    # Config
    "ArchiverConfig",
    "BlobStoreConfig",
    # Enums
    "BlobStoreType",
    "CleanupAction",
    # Models
    "ResourceKey",
    "CleanupEntry",
    "CleanupResult",
    # Exceptions
    "ArchiverError",
    "ArchiverRootMissingError",
    "ConfigurationError",
    "NotFoundError",
    "StorageError",
    "CodecError",
    "FilesystemError",
]
