"""In-memory file store used by the test suite."""

from __future__ import annotations

from pathlib import Path

from slm_app.storage.base import FileStoreBase


class MemoryFileStore(FileStoreBase):
    """Dict-backed store; files enumerate in insertion order."""

    def __init__(self, files: dict[str | Path, bytes] | None = None) -> None:
        self._files: dict[Path, bytes] = {}
        for path, data in (files or {}).items():
            self.write_bytes(Path(path), data)

    def list_files(self, directory: Path) -> list[str]:
        directory = Path(directory)
        return [p.name for p in self._files if p.parent == directory]

    def is_file(self, path: Path) -> bool:
        return Path(path) in self._files

    def read_bytes(self, path: Path) -> bytes:
        try:
            return self._files[Path(path)]
        except KeyError:
            raise FileNotFoundError(f"No such file: {path}") from None

    def write_bytes(self, path: Path, data: bytes) -> None:
        self._files[Path(path)] = bytes(data)

    def delete(self, path: Path) -> None:
        try:
            del self._files[Path(path)]
        except KeyError:
            raise FileNotFoundError(f"No such file: {path}") from None

    def paths(self) -> list[Path]:
        return list(self._files)
