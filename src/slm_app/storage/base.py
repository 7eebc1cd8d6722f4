"""File store base interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class FileStoreBase(ABC):
    """Abstract view of the pattern directories on disk."""

    @abstractmethod
    def list_files(self, directory: Path) -> list[str]:
        """
        Names of regular files directly inside ``directory``, in the store's
        enumeration order. A missing or unreadable directory yields ``[]``.
        """
        pass

    @abstractmethod
    def is_file(self, path: Path) -> bool:
        pass

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes:
        pass

    @abstractmethod
    def write_bytes(self, path: Path, data: bytes) -> None:
        """Write ``data`` to ``path``, creating parent directories."""
        pass

    @abstractmethod
    def delete(self, path: Path) -> None:
        """Remove ``path``. Raises FileNotFoundError if it does not exist."""
        pass
