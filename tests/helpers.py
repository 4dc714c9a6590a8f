"""Filesystem helpers shared by the test modules."""

from __future__ import annotations

import io
from pathlib import Path

SAMPLE_TREE: dict[str, bytes] = {
    "segments_1": b"lucene segments file",
    "_0.cfs": bytes(range(256)) * 8,
    "state/index_state.json": b'{"gen": 3}',
    "state/nested/deep.bin": b"\x00\x01\x02",
}


def write_tree(root: Path, files: dict[str, bytes], empty_dirs: tuple[str, ...] = ()) -> Path:
    """Create `files` (relative path → bytes) and `empty_dirs` under `root`."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, data in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    for rel in empty_dirs:
        (root / rel).mkdir(parents=True, exist_ok=True)
    return root


def read_tree(root: Path) -> dict[str, bytes]:
    """Map every regular file under `root` (relative posix path) to its bytes."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


class BrokenStream:
    """A byte stream that yields `data` and then fails like a dropped connection."""

    def __init__(self, data: bytes, error: BaseException) -> None:
        self._buf = io.BytesIO(data)
        self._error = error
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        chunk = self._buf.read(size)
        if not chunk:
            raise self._error
        return chunk

    def close(self) -> None:
        self.closed = True
