"""
archiver.core.config - Configuration Management
=================================================

This module provides the configuration system for the archiver. Configuration
can be loaded from multiple sources with the following priority (highest first):

    1. Explicit constructor arguments
    2. Environment variables (prefixed with ARCHIVER_)
    3. YAML configuration file (archiver.yaml)
    4. Default values defined in the models below

Architecture Context:
    The top-level ArchiverConfig is created once and handed to the facade,
    which builds every component from it:

        ArchiverConfig
            ├── BlobStoreConfig     → create_blob_store() → BlobStore
            ├── archiver_directory  → Archiver / LocalLayout
            └── max_workers         → ArchiverService worker pool

Usage:
    # Load from environment variables:
    config = ArchiverConfig()

    # Load from YAML file:
    config = load_config("archiver.yaml")

    # Explicit overrides:
    config = ArchiverConfig(archiver_directory="/var/lib/archiver")

Environment Variables:
    ARCHIVER_LOG_LEVEL=DEBUG
    ARCHIVER_ARCHIVER_DIRECTORY=/var/lib/archiver
    ARCHIVER_MAX_WORKERS=8
    ARCHIVER_BLOB_STORE__TYPE=s3
    ARCHIVER_BLOB_STORE__BUCKET_NAME=search-archives
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from archiver.core.enums import BlobStoreType
from archiver.core.exceptions import ConfigurationError


# =============================================================================
# Blob Store Configuration
# =============================================================================
# Controls where uploaded versions and pointer records are kept. The S3
# settings are only read when type == "s3"; root_path only when
# type == "filesystem".
# =============================================================================
class BlobStoreConfig(BaseModel):
    """Configuration for the remote blob store.

    Attributes:
        type: Which backend to build (memory, filesystem, s3).
        bucket_name: S3 bucket holding content and pointer records.
        root_path: Root directory for the filesystem backend.
        region: AWS region for the S3 client.
        endpoint_url: Custom S3 endpoint (MinIO, localstack).
        request_timeout_seconds: Connect/read timeout for S3 calls.
        max_attempts: botocore retry budget per S3 call.
    """

    type: BlobStoreType = Field(
        default=BlobStoreType.MEMORY,
        description="Blob store backend: 'memory', 'filesystem', or 's3'",
    )
    bucket_name: str = Field(
        default="archiver",
        min_length=1,
        description="Bucket holding version content and pointer records",
    )
    root_path: Optional[Path] = Field(
        default=None,
        description="Root directory for the filesystem backend",
    )
    region: Optional[str] = Field(
        default=None,
        description="AWS region for the S3 client",
    )
    endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom S3 endpoint URL (MinIO, localstack)",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Connect/read timeout in seconds for S3 calls",
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Maximum attempts per S3 call (botocore standard retries)",
    )


# =============================================================================
# Main Configuration
# =============================================================================
# Environment Variable Mapping:
#   ARCHIVER_LOG_LEVEL               → config.log_level
#   ARCHIVER_ARCHIVER_DIRECTORY      → config.archiver_directory
#   ARCHIVER_BLOB_STORE__TYPE        → config.blob_store.type
# =============================================================================
class ArchiverConfig(BaseSettings):
    """Top-level configuration for the archiver.

    Attributes:
        environment: Deployment environment.
        log_level: Logging level for structlog output.
        archiver_directory: Local root under which resource directories live.
            Must exist before download() is called.
        max_workers: Size of the bounded worker pool the async facade runs
            blocking upload/download calls on.
        blob_store: Blob store configuration (see BlobStoreConfig).

    Example:
        >>> config = ArchiverConfig(
        ...     archiver_directory="/var/lib/archiver",
        ...     blob_store=BlobStoreConfig(type="s3", bucket_name="search"),
        ... )
    """

    environment: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    archiver_directory: Path = Field(
        default=Path("archiver"),
        description="Local root directory for materialized resources",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker threads used for blocking archiver operations",
    )
    blob_store: BlobStoreConfig = Field(
        default_factory=BlobStoreConfig,
        description="Blob store configuration",
    )

    model_config = {
        "env_prefix": "ARCHIVER_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> ArchiverConfig:
    """Load archiver configuration from a YAML file and/or environment variables.

    Args:
        path: Path to a YAML configuration file. If None, looks for
            'archiver.yaml' in the current directory, falling back to pure
            defaults + environment variables.

    Returns:
        A fully validated ArchiverConfig instance.

    Raises:
        FileNotFoundError: If an explicit path is provided but doesn't exist.
        ConfigurationError: If the YAML document is not a mapping.
    """
    if path is None:
        default_path = Path("archiver.yaml")
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            raw_data = yaml.safe_load(f)
        if isinstance(raw_data, dict):
            yaml_data = raw_data
        elif raw_data is not None:
            raise ConfigurationError(
                message=f"Configuration file must contain a mapping: {path}",
                error_code="INVALID_CONFIG_FILE",
                details={"path": str(config_path), "type": type(raw_data).__name__},
            )

    return ArchiverConfig(**yaml_data)


def get_default_config() -> ArchiverConfig:
    """Create an ArchiverConfig with all defaults (overridden by env vars)."""
    return ArchiverConfig()
