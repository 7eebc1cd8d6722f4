"""File store backed by the local filesystem."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from slm_app.storage.base import FileStoreBase


class LocalFileStore(FileStoreBase):
    """Reads and writes pattern files on disk."""

    def list_files(self, directory: Path) -> list[str]:
        names: list[str] = []
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    try:
                        if entry.is_file():
                            names.append(entry.name)
                    except OSError:
                        continue
        except OSError:
            return []
        return names

    def is_file(self, path: Path) -> bool:
        return Path(path).is_file()

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write next to the target and swap it in, so readers never see a partial file.
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def delete(self, path: Path) -> None:
        Path(path).unlink()
