"""
Tests for archiver.core.exceptions
====================================

What's Being Tested:
    - Base ArchiverError fields, to_dict(), repr
    - Default error codes per subclass
    - Context enrichment (key, path) in details
    - ArchiverRootMissingError satisfies both ConfigurationError and NotFoundError
"""

import pytest

from archiver.core.exceptions import (
    ArchiverError,
    ArchiverRootMissingError,
    CodecError,
    ConfigurationError,
    FilesystemError,
    NotFoundError,
    StorageError,
)


class TestArchiverError:
    """Tests for the base exception."""

    def test_fields(self) -> None:
        err = ArchiverError("boom", error_code="X", details={"a": 1})
        assert str(err) == "boom"
        assert err.message == "boom"
        assert err.error_code == "X"
        assert err.details == {"a": 1}

    def test_to_dict(self) -> None:
        data = StorageError("write failed", key="search/idx1/ab").to_dict()
        assert data["error_type"] == "StorageError"
        assert data["error_code"] == "STORAGE_ERROR"
        assert data["details"] == {"key": "search/idx1/ab"}

    def test_repr_includes_code(self) -> None:
        assert "CODEC_ERROR" in repr(CodecError("bad stream"))


class TestSubclasses:
    """Default codes and hierarchy."""

    @pytest.mark.parametrize(
        "cls, code",
        [
            (ConfigurationError, "CONFIG_ERROR"),
            (NotFoundError, "NOT_FOUND"),
            (StorageError, "STORAGE_ERROR"),
            (CodecError, "CODEC_ERROR"),
            (FilesystemError, "FILESYSTEM_ERROR"),
        ],
    )
    def test_default_codes(self, cls, code) -> None:
        err = cls("message")
        assert err.error_code == code
        assert isinstance(err, ArchiverError)

    def test_filesystem_error_records_path(self) -> None:
        err = FilesystemError("rename failed", path="/tmp/x")
        assert err.path == "/tmp/x"
        assert err.details["path"] == "/tmp/x"

    def test_root_missing_is_config_and_not_found(self) -> None:
        err = ArchiverRootMissingError("missing", details={"path": "/nope"})
        assert isinstance(err, ConfigurationError)
        assert isinstance(err, NotFoundError)
        assert err.error_code == "ARCHIVER_DIR_MISSING"
        assert err.details == {"path": "/nope"}
