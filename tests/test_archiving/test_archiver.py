"""
Tests for archiver.archiving.archiver
=======================================

What's Being Tested:
    - upload(): version id generation, temp file hygiene, input validation
    - bless_version() + download(): the blessed version is what lands locally
    - download(): round trip, fetch-at-most-once, stale version cleanup
    - Crash behaviour: an interrupted swap or unpack leaves `current` intact
    - Fetch failures mid-stream surface as StorageError
    - A competing cleanup deleting the swapped-in version triggers a retry
    - Concurrent downloads of the same resource converge
"""

import io
import os
import shutil
import threading
from contextlib import closing

import boto3
import pytest
from botocore.exceptions import ReadTimeoutError
from botocore.response import StreamingBody
from botocore.stub import Stubber

from archiver.archiving.archiver import MAX_DOWNLOAD_ATTEMPTS, Archiver
from archiver.archiving.layout import CURRENT_VERSION_NAME, TMP_SUFFIX, is_hex_version_name
from archiver.core.exceptions import (
    ArchiverRootMissingError,
    CodecError,
    FilesystemError,
    NotFoundError,
    StorageError,
)
from archiver.infrastructure.blob_store import BlobReader, S3BlobStore
from tests.helpers import SAMPLE_TREE, BrokenStream, read_tree, write_tree


def _count_content_fetches(monkeypatch, blob_store) -> list[str]:
    """Record every get() of a content key (pointer reads excluded)."""
    fetched: list[str] = []
    real_get = blob_store.get

    def counting_get(key):
        if "/_version/" not in key:
            fetched.append(key)
        return real_get(key)

    monkeypatch.setattr(blob_store, "get", counting_get)
    return fetched


def _publish(archiver, source_tree, service="search", resource="idx1") -> str:
    version_id = archiver.upload(service, resource, source_tree)
    assert archiver.bless_version(service, resource, version_id) is True
    return version_id


# =============================================================================
# Tests: Upload
# =============================================================================
class TestUpload:
    """Tests for Archiver.upload()."""

    def test_returns_hex_version_id(self, archiver, source_tree) -> None:
        version_id = archiver.upload("search", "idx1", source_tree)
        assert is_hex_version_name(version_id)

    def test_stores_content_under_service_and_resource(self, archiver, blob_store, source_tree) -> None:
        version_id = archiver.upload("search", "idx1", source_tree)
        assert blob_store.keys("search/") == [f"search/idx1/{version_id}"]

    def test_identical_content_gets_distinct_versions(self, archiver, source_tree) -> None:
        assert archiver.upload("search", "idx1", source_tree) != archiver.upload("search", "idx1", source_tree)

    def test_leaves_no_temp_files(self, archiver, archiver_root, source_tree) -> None:
        archiver.upload("search", "idx1", source_tree)
        assert os.listdir(archiver_root) == []

    def test_does_not_touch_pointers(self, archiver, blob_store, source_tree) -> None:
        archiver.upload("search", "idx1", source_tree)
        assert blob_store.keys("search/_version/") == []
        with pytest.raises(NotFoundError):
            archiver.download("search", "idx1")

    def test_missing_source_raises_not_found(self, archiver, tmp_path) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            archiver.upload("search", "idx1", tmp_path / "nope")
        assert exc_info.value.error_code == "SOURCE_NOT_FOUND"

    def test_missing_root_raises(self, blob_store, tmp_path, source_tree) -> None:
        archiver = Archiver(blob_store, tmp_path / "no-root")
        with pytest.raises(ArchiverRootMissingError):
            archiver.upload("search", "idx1", source_tree)
        assert blob_store.keys() == []

    def test_temp_file_removed_when_store_fails(self, archiver, blob_store, archiver_root, source_tree, monkeypatch) -> None:
        def failing_put_file(key, path):
            raise StorageError(message="remote down", key=key)

        monkeypatch.setattr(blob_store, "put_file", failing_put_file)
        with pytest.raises(StorageError):
            archiver.upload("search", "idx1", source_tree)
        assert os.listdir(archiver_root) == []


# =============================================================================
# Tests: Download
# =============================================================================
class TestDownload:
    """Tests for Archiver.download()."""

    def test_upload_bless_download(self, archiver, archiver_root, source_tree) -> None:
        version_id = _publish(archiver, source_tree)

        current = archiver.download("search", "idx1")

        assert current == archiver_root / "idx1" / CURRENT_VERSION_NAME
        assert read_tree(current) == SAMPLE_TREE
        assert (current / "empty").is_dir()
        assert sorted(os.listdir(archiver_root / "idx1")) == sorted([version_id, CURRENT_VERSION_NAME])
        assert os.readlink(current) == version_id

    def test_missing_root_raises(self, blob_store, tmp_path) -> None:
        with pytest.raises(ArchiverRootMissingError):
            Archiver(blob_store, tmp_path / "no-root").download("search", "idx1")

    def test_never_blessed_raises_not_found(self, archiver, archiver_root) -> None:
        with pytest.raises(NotFoundError):
            archiver.download("search", "idx1")
        assert os.listdir(archiver_root) == []

    def test_second_download_does_not_refetch(self, archiver, blob_store, source_tree, monkeypatch) -> None:
        _publish(archiver, source_tree)
        fetched = _count_content_fetches(monkeypatch, blob_store)

        first = archiver.download("search", "idx1")
        second = archiver.download("search", "idx1")

        assert first == second
        assert len(fetched) == 1

    def test_new_version_replaces_old(self, archiver, archiver_root, source_tree, tmp_path) -> None:
        v1 = _publish(archiver, source_tree)
        archiver.download("search", "idx1")

        updated = write_tree(tmp_path / "v2", {"segments_2": b"new segments"})
        v2 = _publish(archiver, updated)
        current = archiver.download("search", "idx1")

        assert read_tree(current) == {"segments_2": b"new segments"}
        resource_dir = archiver_root / "idx1"
        assert sorted(os.listdir(resource_dir)) == sorted([v2, CURRENT_VERSION_NAME])
        assert not (resource_dir / v1).exists()

    def test_manual_entries_survive_cleanup(self, archiver, archiver_root, source_tree) -> None:
        _publish(archiver, source_tree)
        archiver.download("search", "idx1")
        resource_dir = archiver_root / "idx1"
        write_tree(resource_dir / "backup-2024", {"note": b"keep"})
        (resource_dir / "README").write_bytes(b"operator notes")

        _publish(archiver, source_tree)
        archiver.download("search", "idx1")

        assert (resource_dir / "backup-2024" / "note").read_bytes() == b"keep"
        assert (resource_dir / "README").is_file()

    def test_download_follows_latest_bless(self, archiver, source_tree, tmp_path) -> None:
        v1 = archiver.upload("search", "idx1", source_tree)
        v2 = archiver.upload("search", "idx1", write_tree(tmp_path / "v2", {"f": b"2"}))
        for version_id in (v1, v2, v1):
            archiver.bless_version("search", "idx1", version_id)

        current = archiver.download("search", "idx1")

        assert os.readlink(current) == v1
        assert read_tree(current) == SAMPLE_TREE

    def test_resources_are_independent(self, archiver, archiver_root, source_tree, tmp_path) -> None:
        _publish(archiver, source_tree, resource="idx1")
        _publish(archiver, write_tree(tmp_path / "other", {"f": b"other"}), resource="idx2")

        archiver.download("search", "idx1")
        archiver.download("search", "idx2")

        assert read_tree(archiver_root / "idx1" / CURRENT_VERSION_NAME) == SAMPLE_TREE
        assert read_tree(archiver_root / "idx2" / CURRENT_VERSION_NAME) == {"f": b"other"}

    def test_file_at_version_name_is_not_served(self, archiver, archiver_root, source_tree) -> None:
        version_id = _publish(archiver, source_tree)
        resource_dir = archiver_root / "idx1"
        resource_dir.mkdir()
        (resource_dir / version_id).write_bytes(b"stray file")

        with pytest.raises(FilesystemError) as exc_info:
            archiver.download("search", "idx1")

        assert exc_info.value.error_code == "VERSION_PATH_NOT_DIRECTORY"
        assert not os.path.lexists(resource_dir / CURRENT_VERSION_NAME)

    def test_custom_version_predicate(self, blob_store, archiver_root, source_tree) -> None:
        archiver = Archiver(blob_store, archiver_root, is_version_name=lambda name: False)
        v1 = _publish(archiver, source_tree)
        archiver.download("search", "idx1")
        v2 = _publish(archiver, source_tree)
        archiver.download("search", "idx1")

        # Nothing counts as a version name, so the old version is kept.
        assert sorted(os.listdir(archiver_root / "idx1")) == sorted([v1, v2, CURRENT_VERSION_NAME])


# =============================================================================
# Tests: Interrupted Downloads
# =============================================================================
class TestInterruptedDownload:
    """A failed download never leaves `current` pointing at a partial tree."""

    def test_failed_swap_keeps_previous_current(self, archiver, archiver_root, source_tree, tmp_path, monkeypatch) -> None:
        v1 = _publish(archiver, source_tree)
        archiver.download("search", "idx1")
        v2 = _publish(archiver, write_tree(tmp_path / "v2", {"f": b"2"}))

        def failing_replace(src, dst):
            raise OSError("power cut")

        with monkeypatch.context() as patch:
            patch.setattr(os, "replace", failing_replace)
            with pytest.raises(FilesystemError):
                archiver.download("search", "idx1")

        current = archiver_root / "idx1" / CURRENT_VERSION_NAME
        assert os.readlink(current) == v1
        assert read_tree(current) == SAMPLE_TREE
        assert not any(name.endswith(TMP_SUFFIX) for name in os.listdir(archiver_root / "idx1"))

        # The retry reuses the already published directory.
        assert archiver.download("search", "idx1") == current
        assert os.readlink(current) == v2

    def test_corrupt_content_publishes_nothing(self, archiver, blob_store, archiver_root) -> None:
        blob_store.put("search/idx1/dead", b"not a tarball")
        assert archiver.bless_version("search", "idx1", "dead") is True

        with pytest.raises(CodecError):
            archiver.download("search", "idx1")

        assert os.listdir(archiver_root / "idx1") == []

    def test_fetch_failure_keeps_previous_current(self, archiver, blob_store, archiver_root, source_tree, monkeypatch) -> None:
        v1 = _publish(archiver, source_tree)
        archiver.download("search", "idx1")
        _publish(archiver, source_tree)
        real_get = blob_store.get

        def failing_get(key):
            if "/_version/" in key:
                return real_get(key)
            raise StorageError(message="connection reset", key=key)

        monkeypatch.setattr(blob_store, "get", failing_get)
        with pytest.raises(StorageError):
            archiver.download("search", "idx1")

        assert sorted(os.listdir(archiver_root / "idx1")) == sorted([v1, CURRENT_VERSION_NAME])

    @pytest.mark.parametrize(
        "error",
        [OSError("connection reset"), ReadTimeoutError(endpoint_url="https://s3.amazonaws.com")],
    )
    def test_stream_dropping_midway_raises_storage_error(
        self, archiver, blob_store, archiver_root, source_tree, monkeypatch, error
    ) -> None:
        version_id = _publish(archiver, source_tree)
        content_key = f"search/idx1/{version_id}"
        with closing(blob_store.get(content_key)) as stream:
            data = stream.read()
        real_get = blob_store.get

        def dropping_get(key):
            if key == content_key:
                return BlobReader(BrokenStream(data[: len(data) // 2], error), key)
            return real_get(key)

        monkeypatch.setattr(blob_store, "get", dropping_get)
        with pytest.raises(StorageError) as exc_info:
            archiver.download("search", "idx1")

        assert exc_info.value.key == content_key
        assert os.listdir(archiver_root / "idx1") == []

    def test_truncated_s3_body_raises_storage_error(self, archiver_root, source_tree, codec, tmp_path) -> None:
        packed = tmp_path / "packed.tmp"
        codec.pack(source_tree, packed)
        data = packed.read_bytes()
        client = boto3.client(
            "s3",
            region_name="us-east-1",
            aws_access_key_id="testing",
            aws_secret_access_key="testing",
        )
        archiver = Archiver(S3BlobStore("bucket", client=client), archiver_root)

        with Stubber(client) as stubber:
            for key, body, length in [
                ("search/_version/idx1/_latest_version", b"0", 1),
                ("search/_version/idx1/0", b"ab12", 4),
                ("search/idx1/ab12", data[: len(data) // 2], len(data)),
            ]:
                stubber.add_response(
                    "get_object",
                    {"Body": StreamingBody(io.BytesIO(body), length)},
                    {"Bucket": "bucket", "Key": key},
                )
            with pytest.raises(StorageError):
                archiver.download("search", "idx1")

        assert os.listdir(archiver_root / "idx1") == []


# =============================================================================
# Tests: Cleanup Race
# =============================================================================
class TestCleanupRace:
    """A competing cleanup removing the version just swapped in is recovered from."""

    def _swap_then_lose(self, archiver, monkeypatch, times):
        """After the first `times` swaps, delete the target like a competing cleanup."""
        real_swap = archiver.layout.swap_current
        lost = []

        def swap_current(resource_dir, version_name):
            current = real_swap(resource_dir, version_name)
            if len(lost) < times:
                lost.append(version_name)
                shutil.rmtree(resource_dir / version_name)
            return current

        monkeypatch.setattr(archiver.layout, "swap_current", swap_current)
        return lost

    def test_retries_when_target_vanishes(self, archiver, blob_store, source_tree, monkeypatch) -> None:
        version_id = _publish(archiver, source_tree)
        fetched = _count_content_fetches(monkeypatch, blob_store)
        lost = self._swap_then_lose(archiver, monkeypatch, times=1)

        current = archiver.download("search", "idx1")

        assert lost == [version_id]
        assert len(fetched) == 2
        assert os.readlink(current) == version_id
        assert read_tree(current) == SAMPLE_TREE

    def test_gives_up_after_max_attempts(self, archiver, source_tree, monkeypatch) -> None:
        _publish(archiver, source_tree)
        lost = self._swap_then_lose(archiver, monkeypatch, times=MAX_DOWNLOAD_ATTEMPTS)

        with pytest.raises(FilesystemError) as exc_info:
            archiver.download("search", "idx1")

        assert exc_info.value.error_code == "CURRENT_TARGET_VANISHED"
        assert len(lost) == MAX_DOWNLOAD_ATTEMPTS


# =============================================================================
# Tests: Concurrency
# =============================================================================
class TestConcurrentDownloads:
    """Several threads downloading the same resource converge."""

    def test_parallel_downloads(self, archiver, archiver_root, source_tree) -> None:
        version_id = _publish(archiver, source_tree)
        results = []
        errors = []
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            try:
                results.append(archiver.download("search", "idx1"))
            except Exception as exc:  # surfaced through the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(results)) == 1
        resource_dir = archiver_root / "idx1"
        assert sorted(os.listdir(resource_dir)) == sorted([version_id, CURRENT_VERSION_NAME])
        assert read_tree(resource_dir / CURRENT_VERSION_NAME) == SAMPLE_TREE
