"""
archiver - Versioned Resource Archiver
========================================

Keeps large on-disk index resources (index segments, configuration
snapshots) synchronized with a remote object store. Nodes are provisioned,
rolled back, or recovered by fetching a known-good version rather than
rebuilding it.

    upload         local directory  →  new immutable version in the blob store
    bless_version  version          →  canonical ("latest") for the resource
    download       latest version   →  <root>/<resource>/current, atomically

Quick Start:
    >>> from archiver import ArchiverService
    >>> async with ArchiverService() as service:
    ...     current = await service.download("search", "idx1")
"""

__version__ = "0.1.0"

from archiver.archiving.archiver import Archiver
from archiver.facade import ArchiverService

__all__ = ["Archiver", "ArchiverService", "__version__"]
