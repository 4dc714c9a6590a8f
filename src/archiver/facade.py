"""
archiver.facade - ArchiverService Top-Level Facade
====================================================

The ArchiverService is the async entry point for serving nodes and producers.
It builds the blob store, codec, version manager and Archiver from an
ArchiverConfig, and runs every blocking archiver call on a bounded worker
pool so that large uploads and downloads never block the event loop.

Architecture Context:

    ┌──────────────────────────────────────────────────┐
    │            ArchiverService (Facade)                │
    │   ThreadPoolExecutor(max_workers)                  │
    │                        │                           │
    │  ┌─────────────────────▼───────────────────────┐  │
    │  │   Archiver  (upload / bless / download)      │  │
    │  │   LocalLayout (publish, swap, cleanup)       │  │
    │  └─────────────────────┬───────────────────────┘  │
    │                        │                           │
    │  ┌─────────────────────▼───────────────────────┐  │
    │  │   BlobStore · ArchiveCodec · VersionManager  │  │
    │  └─────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────┘

Usage:
    >>> async with ArchiverService(config) as service:
    ...     version_id = await service.upload("search", "idx1", Path("/data/idx1"))
    ...     await service.bless_version("search", "idx1", version_id)
    ...     current = await service.download("search", "idx1")
"""

from __future__ import annotations

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import structlog

from archiver.archiving.archiver import Archiver
from archiver.core.config import ArchiverConfig
from archiver.core.logging import configure_logging
from archiver.infrastructure.archive_codec import ArchiveCodec
from archiver.infrastructure.blob_store import BlobStore, create_blob_store


# =============================================================================
# Logger
# =============================================================================
logger = structlog.get_logger()

T = TypeVar("T")


class ArchiverService:
    """Async facade over the blocking Archiver.

    Lifecycle:
        1. ``ArchiverService(config)`` — build components
        2. ``await initialize()`` — configure logging, start the worker pool
        3. ``await upload(...)`` / ``download(...)`` / ``bless_version(...)``
        4. ``await shutdown()`` — drain and stop the worker pool

    Or use the async context manager:
        async with ArchiverService(config) as service:
            ...

    Attributes:
        _config: Archiver configuration.
        _blob_store: Remote object store.
        _archiver: The blocking archiver all calls delegate to.
        _executor: Bounded worker pool (None until initialized).
    """

    def __init__(
        self,
        config: Optional[ArchiverConfig] = None,
        *,
        blob_store: Optional[BlobStore] = None,
        codec: Optional[ArchiveCodec] = None,
        is_version_name: Optional[Callable[[str], bool]] = None,
    ) -> None:
        """Initialize the facade.

        Args:
            config: Archiver configuration. Defaults to ArchiverConfig().
            blob_store: Optional custom blob store. Defaults to the one
                selected by config.blob_store.
            codec: Optional custom archive codec. Defaults to tar + gzip.
            is_version_name: Optional predicate for cleanup's version-name
                check. Defaults to the hex check.
        """
        self._config = config or ArchiverConfig()
        self._blob_store = blob_store or create_blob_store(self._config.blob_store)

        archiver_kwargs: dict[str, Any] = {"codec": codec}
        if is_version_name is not None:
            archiver_kwargs["is_version_name"] = is_version_name
        self._archiver = Archiver(
            self._blob_store,
            self._config.archiver_directory,
            **archiver_kwargs,
        )

        self._executor: Optional[ThreadPoolExecutor] = None
        self._logger = logger.bind(component="archiver_service")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> ArchiverConfig:
        return self._config

    @property
    def archiver(self) -> Archiver:
        """Access the blocking Archiver directly."""
        return self._archiver

    @property
    def blob_store(self) -> BlobStore:
        return self._blob_store

    @property
    def is_initialized(self) -> bool:
        return self._executor is not None

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def initialize(self) -> None:
        """Configure logging and start the worker pool. Idempotent."""
        if self._executor is not None:
            self._logger.debug("archiver_service_already_initialized")
            return

        configure_logging(self._config.log_level)
        self._executor = ThreadPoolExecutor(
            max_workers=self._config.max_workers,
            thread_name_prefix="archiver",
        )
        self._logger.info(
            "archiver_service_initialized",
            archiver_directory=str(self._config.archiver_directory),
            blob_store=self._config.blob_store.type.value,
            max_workers=self._config.max_workers,
        )

    async def shutdown(self) -> None:
        """Wait for in-flight operations and stop the worker pool. Idempotent."""
        if self._executor is None:
            self._logger.debug("archiver_service_not_initialized_skipping_shutdown")
            return

        executor, self._executor = self._executor, None
        await asyncio.get_running_loop().run_in_executor(
            None, functools.partial(executor.shutdown, wait=True)
        )
        self._logger.info("archiver_service_shutdown_complete")

    async def __aenter__(self) -> ArchiverService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # =========================================================================
    # Archiver Operations
    # =========================================================================

    async def upload(self, service_name: str, resource: str, source_dir: Path) -> str:
        """Upload `source_dir` as a new version. See Archiver.upload."""
        return await self._run(self._archiver.upload, service_name, resource, Path(source_dir))

    async def bless_version(self, service_name: str, resource: str, version_id: str) -> bool:
        """Make `version_id` the latest version. See Archiver.bless_version."""
        return await self._run(self._archiver.bless_version, service_name, resource, version_id)

    async def download(self, service_name: str, resource: str) -> Path:
        """Fetch and activate the latest version. See Archiver.download."""
        return await self._run(self._archiver.download, service_name, resource)

    async def sweep(self, resource: Optional[str] = None, older_than_seconds: float = 0.0) -> list[str]:
        """Remove orphaned temp entries from the archiver root or one resource.

        Only safe when no operation on the swept directory is in flight,
        unless `older_than_seconds` exceeds the longest expected operation.
        """
        layout = self._archiver.layout
        directory = layout.root if resource is None else layout.resource_dir(resource)
        return await self._run(layout.sweep_temp_entries, directory, older_than_seconds)

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        self._ensure_initialized()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    def _ensure_initialized(self) -> None:
        if self._executor is None:
            raise RuntimeError(
                "ArchiverService has not been initialized. "
                "Call await service.initialize() or use 'async with ArchiverService() as service:'"
            )

    def __repr__(self) -> str:
        return (
            f"ArchiverService("
            f"initialized={self.is_initialized}, "
            f"archiver_directory={str(self._config.archiver_directory)!r})"
        )
