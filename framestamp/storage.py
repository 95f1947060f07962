from __future__ import annotations

from pathlib import Path
from typing import Protocol

from framestamp.errors import StorageError


class FileStore(Protocol):
    def read_bytes(self, path: Path) -> bytes: ...

    def write_bytes(self, path: Path, data: bytes) -> None: ...


class LocalFileStore:
    """Local filesystem; OS errors surface as StorageError carrying the path."""

    def read_bytes(self, path: Path) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc.strerror or exc}", path) from exc

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"cannot write {path}: {exc.strerror or exc}", path) from exc
