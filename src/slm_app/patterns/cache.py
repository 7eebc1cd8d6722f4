"""Path-keyed cache of decoded phase rasters."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np
from PIL import Image

from slm_app.storage.base import FileStoreBase

TWO_PI = 2.0 * np.pi
LEVELS = 256
PHASE_STEP = TWO_PI / LEVELS

log = logging.getLogger("slm_app")


def fit_to_shape(array: np.ndarray, shape: Tuple[int, int]) -> np.ndarray:
    """
    Index-aligned crop/pad: ``out[i, j] = array[i, j]`` where it exists, else 0.
    """
    rows, cols = shape
    out = np.zeros((rows, cols), dtype=array.dtype)
    r = min(rows, array.shape[0])
    c = min(cols, array.shape[1])
    out[:r, :c] = array[:r, :c]
    return out


def decode_phase_image(data: bytes, shape: Optional[Tuple[int, int]] = None) -> np.ndarray:
    """Decode an 8-bit grey image into phase values ``s * 2π/256``."""
    with Image.open(BytesIO(data)) as img:
        samples = np.array(img.convert("L"), dtype=np.uint8)
    phase = samples.astype(np.float64) * PHASE_STEP
    if shape is not None and tuple(shape) != phase.shape:
        phase = fit_to_shape(phase, shape)
    return phase


def quantize_levels(phase: np.ndarray) -> np.ndarray:
    """Wrap phase into [0, 2π) and round to the nearest of 256 grey levels."""
    levels = np.rint(np.mod(phase, TWO_PI) / PHASE_STEP).astype(np.int64) % LEVELS
    return levels.astype(np.uint8)


def encode_phase_image(phase: np.ndarray, fmt: str = "PNG") -> bytes:
    buffer = BytesIO()
    Image.fromarray(quantize_levels(phase)).save(buffer, format=fmt)
    return buffer.getvalue()


def image_format_for(path: Path) -> str:
    ext = Path(path).suffix.lower()
    fmt = Image.registered_extensions().get(ext)
    if fmt is None:
        raise ValueError(f"Unsupported image extension: {ext or '<none>'}")
    return fmt


class ArrayCache:
    """
    Decoded rasters keyed by file path.

    The first load of a path decides its shape; later lookups return the stored
    array whatever shape they ask for. Entries are only replaced through ``put``.
    """

    def __init__(self, store: FileStoreBase) -> None:
        self.store = store
        self._entries: Dict[Path, np.ndarray] = {}

    def get_or_load(self, path: Path, shape: Optional[Tuple[int, int]] = None) -> np.ndarray:
        key = Path(path)
        cached = self._entries.get(key)
        if cached is not None:
            return cached
        log.debug("Loading pattern file %s", key)
        array = decode_phase_image(self.store.read_bytes(key), shape)
        self._entries[key] = array
        return array

    def put(self, path: Path, array: np.ndarray) -> None:
        self._entries[Path(path)] = array

    def discard(self, path: Path) -> None:
        """Forget ``path`` after the file behind it was replaced or removed."""
        self._entries.pop(Path(path), None)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and Path(path) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
