"""
archiver.infrastructure.archive_codec - Directory Tree Packing
================================================================

Packs a directory tree into a single gzip-compressed tar stream and unpacks
such a stream back into a directory tree. Relative paths, directory
structure, and file bytes round-trip exactly; permissions and ownership are
not preserved.

Symlinks in the source tree are followed when packing: a linked file is
stored as a regular file and a linked directory as a real directory with
its contents. A link that loops back onto one of its own ancestors makes
packing fail with CodecError.

Unpacking reads the stream sequentially ("r|gz"), so it works directly on a
blob store response body without buffering the archive on disk. Errors
raised by the stream itself (StorageError from a BlobReader) pass through
untouched; only failures writing the tree become FilesystemError.

Rejected members (CodecError):
    - absolute paths or paths containing ".."
    - anything other than regular files and directories (links, devices)
"""

from __future__ import annotations

import gzip
import os
import tarfile
import zlib
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import BinaryIO

import structlog

from archiver.core.exceptions import CodecError, FilesystemError


logger = structlog.get_logger()

_STREAM_ERRORS = (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile)
_COPY_BUFSIZE = 64 * 1024


# =============================================================================
# Abstract Base Class
# =============================================================================
class ArchiveCodec(ABC):
    """Packs directories into single streams and back."""

    @abstractmethod
    def pack(self, source_dir: Path, dest_path: Path) -> None:
        """Write the packed form of `source_dir` to the file `dest_path`.

        Raises:
            CodecError: If the tree cannot be packed.
        """

    @abstractmethod
    def unpack(self, stream: BinaryIO, dest_dir: Path) -> None:
        """Recreate the packed tree read from `stream` under `dest_dir`.

        `dest_dir` is created if missing.

        Raises:
            CodecError: If the stream is corrupt, truncated, or unsafe.
            FilesystemError: If writing the tree to disk fails.
        """


# =============================================================================
# Tar + Gzip Implementation
# =============================================================================
class TarGzArchiveCodec(ArchiveCodec):
    """Gzip-compressed tar codec.

    Example:
        >>> codec = TarGzArchiveCodec()
        >>> codec.pack(Path("/data/idx1"), Path("/tmp/x.tmp"))
        >>> with open("/tmp/x.tmp", "rb") as f:
        ...     codec.unpack(f, Path("/tmp/restored"))
    """

    def __init__(self, compresslevel: int = 6) -> None:
        self._compresslevel = compresslevel
        self._logger = logger.bind(component="tar_gz_codec")

    def pack(self, source_dir: Path, dest_path: Path) -> None:
        source_dir = Path(source_dir)
        count = 0
        # Real paths of every directory on the walk path down to each dir.
        ancestry = {str(source_dir): frozenset({os.path.realpath(source_dir)})}
        try:
            with tarfile.open(
                dest_path,
                mode="w:gz",
                compresslevel=self._compresslevel,
                dereference=True,
            ) as tar:
                for dirpath, dirnames, filenames in os.walk(source_dir, followlinks=True):
                    dirnames.sort()
                    base = Path(dirpath)
                    seen = ancestry.pop(dirpath)
                    for name in dirnames:
                        child = base / name
                        real = os.path.realpath(child)
                        if real in seen:
                            raise CodecError(
                                message=f"Symlink cycle while packing {source_dir}: {child} -> {real}",
                                error_code="SYMLINK_CYCLE",
                                details={"source": str(source_dir), "path": str(child)},
                            )
                        ancestry[str(child)] = seen | {real}
                    for name in dirnames + sorted(filenames):
                        path = base / name
                        arcname = path.relative_to(source_dir).as_posix()
                        tar.add(path, arcname=arcname, recursive=False)
                        count += 1
        except (tarfile.TarError, OSError) as exc:
            raise CodecError(
                message=f"Failed to pack directory {source_dir}: {exc}",
                error_code="PACK_FAILED",
                details={"source": str(source_dir), "dest": str(dest_path)},
            ) from exc
        self._logger.debug("directory_packed", source=str(source_dir), entries=count)

    def unpack(self, stream: BinaryIO, dest_dir: Path) -> None:
        dest_dir = Path(dest_dir)
        count = 0
        _mkdir(dest_dir)
        try:
            with tarfile.open(fileobj=stream, mode="r|gz") as tar:
                for member in tar:
                    parts = _safe_parts(member.name)
                    if not parts:
                        continue
                    target = dest_dir.joinpath(*parts)
                    if member.isdir():
                        _mkdir(target)
                    elif member.isfile():
                        _mkdir(target.parent)
                        _copy_member(tar.extractfile(member), target)
                    else:
                        raise CodecError(
                            message=f"Unsupported archive member type: {member.name}",
                            error_code="UNSUPPORTED_MEMBER",
                            details={"member": member.name, "type": member.type.decode("ascii", "replace")},
                        )
                    count += 1
        except _STREAM_ERRORS as exc:
            raise CodecError(
                message=f"Failed to unpack archive into {dest_dir}: {exc}",
                error_code="UNPACK_FAILED",
                details={"dest": str(dest_dir)},
            ) from exc
        self._logger.debug("archive_unpacked", dest=str(dest_dir), entries=count)


def _safe_parts(name: str) -> tuple[str, ...]:
    """Split a member name into path parts, rejecting anything that escapes."""
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts:
        raise CodecError(
            message=f"Archive member escapes destination: {name}",
            error_code="UNSAFE_MEMBER_PATH",
            details={"member": name},
        )
    return tuple(p for p in path.parts if p != ".")


def _write_error(path: Path, exc: OSError) -> FilesystemError:
    return FilesystemError(
        message=f"Failed to write unpacked archive at {path}: {exc}",
        path=str(path),
        error_code="UNPACK_WRITE_FAILED",
    )


def _mkdir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise _write_error(path, exc) from exc


def _copy_member(source: BinaryIO, target: Path) -> None:
    """Copy one member's bytes; read errors propagate as the stream raised them."""
    try:
        out = open(target, "wb")
    except OSError as exc:
        raise _write_error(target, exc) from exc
    with out:
        while True:
            chunk = source.read(_COPY_BUFSIZE)
            if not chunk:
                break
            try:
                out.write(chunk)
            except OSError as exc:
                raise _write_error(target, exc) from exc
