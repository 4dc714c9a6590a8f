"""
Shared Test Fixtures for the Archiver
=======================================

Fixtures are organized by layer:

    1. Configuration fixtures
    2. Infrastructure fixtures (BlobStore, ArchiveCodec, VersionManager)
    3. Archiving fixtures (LocalLayout, Archiver)
    4. Source tree helpers

Every filesystem fixture lives under pytest's tmp_path, so tests never
touch each other's directories.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from archiver.archiving.archiver import Archiver
from archiver.archiving.layout import LocalLayout
from archiver.core.config import ArchiverConfig, BlobStoreConfig
from archiver.infrastructure.archive_codec import TarGzArchiveCodec
from archiver.infrastructure.blob_store import InMemoryBlobStore
from archiver.infrastructure.version_manager import VersionManager
from tests.helpers import SAMPLE_TREE, write_tree


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def archiver_root(tmp_path) -> Path:
    """An existing, empty archiver root directory."""
    root = tmp_path / "archiver"
    root.mkdir()
    return root


@pytest.fixture
def config(archiver_root) -> ArchiverConfig:
    """Archiver configuration pointing at the temp archiver root."""
    return ArchiverConfig(
        archiver_directory=archiver_root,
        max_workers=2,
        blob_store=BlobStoreConfig(type="memory"),
    )


# =============================================================================
# Infrastructure
# =============================================================================

@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    """Fresh InMemoryBlobStore."""
    return InMemoryBlobStore()


@pytest.fixture
def codec() -> TarGzArchiveCodec:
    return TarGzArchiveCodec()


@pytest.fixture
def version_manager(blob_store) -> VersionManager:
    """VersionManager over the in-memory blob store."""
    return VersionManager(blob_store)


# =============================================================================
# Archiving
# =============================================================================

@pytest.fixture
def layout(archiver_root) -> LocalLayout:
    return LocalLayout(archiver_root)


@pytest.fixture
def archiver(blob_store, archiver_root) -> Archiver:
    """Archiver wired to the in-memory blob store and temp root."""
    return Archiver(blob_store, archiver_root)


# =============================================================================
# Source Trees
# =============================================================================

@pytest.fixture
def source_tree(tmp_path) -> Path:
    """A small index-like directory tree to upload."""
    return write_tree(tmp_path / "data" / "idx1", SAMPLE_TREE, empty_dirs=("empty",))
