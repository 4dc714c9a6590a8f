"""
archiver.infrastructure - External Collaborators
==================================================

The components the archiver composes but does not own:

    - BlobStore:       Remote object store (in-memory, filesystem, S3)
    - ArchiveCodec:    Directory tree ↔ single compressed stream
    - VersionManager:  Pointer store (`_latest_version` + redirects)

Usage:
    from archiver.infrastructure import create_blob_store, VersionManager
"""

from archiver.infrastructure.archive_codec import ArchiveCodec, TarGzArchiveCodec
from archiver.infrastructure.blob_store import (
    BlobReader,
    BlobStore,
    FilesystemBlobStore,
    InMemoryBlobStore,
    S3BlobStore,
    create_blob_store,
)
from archiver.infrastructure.version_manager import VersionManager

__all__ = [
    "ArchiveCodec",
    "TarGzArchiveCodec",
    "BlobReader",
    "BlobStore",
    "InMemoryBlobStore",
    "FilesystemBlobStore",
    "S3BlobStore",
    "create_blob_store",
    "VersionManager",
]
