"""
archiver.core.models - Core Data Models
=========================================

Pydantic models shared by the archiving and infrastructure layers.

Model Overview:
    ResourceKey    → Which artifact? (service + resource) and its blob keys
    CleanupEntry   → What happened to one entry during cleanup
    CleanupResult  → The full report of one cleanup pass

Blob Key Namespacing:
    Content and pointer records live side by side in one bucket:

        <service>/<resource>/<version_id>                 packed version content
        <service>/_version/<resource>/_latest_version     latest pointer
        <service>/_version/<resource>/<n>                 redirect n → version_id
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from archiver.core.enums import CleanupAction


# =============================================================================
# Constants
# =============================================================================
LATEST_VERSION_POINTER = "_latest_version"
VERSION_NAMESPACE = "_version"


# =============================================================================
# Resource Key
# =============================================================================
class ResourceKey(BaseModel):
    """Identity of one logical artifact tracked by the archiver.

    A resource evolves over time as new versions are uploaded and blessed.
    This model owns the key layout used in the blob store so that the
    archiver and the version manager agree on it.

    Example:
        >>> key = ResourceKey(service_name="search", resource="idx1")
        >>> key.content_key("a1b2")
        'search/idx1/a1b2'
        >>> key.pointer_key("_latest_version")
        'search/_version/idx1/_latest_version'
    """

    model_config = {"frozen": True}

    service_name: str = Field(
        min_length=1,
        description="Service that owns the resource (first key segment)",
    )
    resource: str = Field(
        min_length=1,
        description="Resource name; also the local resource directory name",
    )

    def content_key(self, version_id: str) -> str:
        """Blob key holding the packed content of one version."""
        return f"{self.service_name}/{self.resource}/{version_id}"

    def pointer_key(self, pointer_name: str) -> str:
        """Blob key holding a pointer or redirect record."""
        return f"{self.service_name}/{VERSION_NAMESPACE}/{self.resource}/{pointer_name}"


# =============================================================================
# Cleanup Report
# =============================================================================
class CleanupEntry(BaseModel):
    """Outcome for a single entry of a resource directory."""

    name: str = Field(description="Entry name directly under the resource directory")
    action: CleanupAction = Field(description="What cleanup did with the entry")
    reason: str = Field(default="", description="Why it was skipped or why deletion failed")


class CleanupResult(BaseModel):
    """Report of one cleanup pass over a resource directory.

    Cleanup is a fold over directory entries: each entry lands in exactly
    one bucket, and a failure on one entry never stops the others.

    Example:
        >>> result = layout.cleanup(resource_dir, keep_version="a1b2")
        >>> result.removed_names
        ['c3d4']
    """

    entries: list[CleanupEntry] = Field(default_factory=list)

    def record(self, name: str, action: CleanupAction, reason: str = "") -> None:
        self.entries.append(CleanupEntry(name=name, action=action, reason=reason))

    def _names(self, action: CleanupAction) -> list[str]:
        return [e.name for e in self.entries if e.action == action]

    @property
    def removed_names(self) -> list[str]:
        return self._names(CleanupAction.REMOVED)

    @property
    def skipped_names(self) -> list[str]:
        return self._names(CleanupAction.SKIPPED)

    @property
    def failed_names(self) -> list[str]:
        return self._names(CleanupAction.FAILED)
