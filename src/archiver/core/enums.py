"""
archiver.core.enums - Type-Safe Enumerations
==============================================

Enumerations used throughout the archiver. All enums inherit from both `str`
and `Enum`, so they serialize to plain strings in YAML / env config and
compare equal to their string values (BlobStoreType.S3 == "s3").
"""

from enum import Enum


# =============================================================================
# Blob Store Type
# =============================================================================
# Selects the concrete BlobStore implementation built by create_blob_store():
#
#   MEMORY     → InMemoryBlobStore    (tests, local development)
#   FILESYSTEM → FilesystemBlobStore  (shared mount, single-host setups)
#   S3         → S3BlobStore          (production)
# =============================================================================
class BlobStoreType(str, Enum):
    """Backend used to hold uploaded versions and pointer records."""

    MEMORY = "memory"
    FILESYSTEM = "filesystem"
    S3 = "s3"


# =============================================================================
# Cleanup Action
# =============================================================================
# The outcome recorded for each entry examined by LocalLayout.cleanup().
# =============================================================================
class CleanupAction(str, Enum):
    """What cleanup did with one entry of a resource directory.

    Usage:
        >>> CleanupAction.REMOVED == "removed"  # True
    """

    REMOVED = "removed"     # Stale version directory deleted
    SKIPPED = "skipped"     # Kept: current alias, active version, or not version-shaped
    FAILED = "failed"       # Deletion attempted and raised; logged, not fatal
