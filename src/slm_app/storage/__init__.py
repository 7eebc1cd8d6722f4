"""File store implementations."""

from .base import FileStoreBase
from .local import LocalFileStore
from .memory import MemoryFileStore

__all__ = [
    "FileStoreBase",
    "LocalFileStore",
    "MemoryFileStore",
]
