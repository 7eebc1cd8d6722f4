"""Base64 payload codecs used by the aim protocol."""

from __future__ import annotations

import base64
import binascii
from typing import Tuple

import numpy as np

RASTER_DTYPE = np.dtype("<f4")


class PayloadError(ValueError):
    """Raised when an encoded payload cannot be decoded."""


def _b64decode(body: str) -> bytes:
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PayloadError(f"invalid base64 payload: {exc}") from exc


def decode_raster(imagedata: str, shape: Tuple[int, int]) -> np.ndarray:
    """
    Decode a little-endian float32 raster laid out row-major as ``shape`` (rows, cols).
    """
    rows, cols = int(shape[0]), int(shape[1])
    if rows < 0 or cols < 0:
        raise PayloadError(f"raster shape must be non-negative, got {shape!r}")
    raw = _b64decode(imagedata)
    if len(raw) % RASTER_DTYPE.itemsize:
        raise PayloadError(f"raster byte length {len(raw)} is not a multiple of {RASTER_DTYPE.itemsize}")
    flat = np.frombuffer(raw, dtype=RASTER_DTYPE)
    if flat.size != rows * cols:
        raise PayloadError(f"raster has {flat.size} samples, shape {rows}x{cols} needs {rows * cols}")
    return flat.reshape(rows, cols).astype(np.float32)


def encode_raster(array: np.ndarray) -> str:
    data = np.ascontiguousarray(array, dtype=RASTER_DTYPE)
    return base64.b64encode(data.tobytes()).decode("ascii")


def split_data_url(payload: str) -> Tuple[str, bytes]:
    """
    Split ``<type>/<subtype>;base64,<body>`` into (subtype, decoded body).

    A leading ``data:`` scheme is tolerated; the subtype becomes the file extension.
    """
    header, sep, body = payload.partition(";base64,")
    if not sep:
        raise PayloadError("image data has no ';base64,' separator")
    if not header:
        raise PayloadError("image data doesn't have a header")
    _, slash, subtype = header.partition("/")
    if not slash or not subtype:
        raise PayloadError(f"image header {header!r} doesn't contain an extension")
    return subtype, _b64decode(body)


def encode_data_url(data: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
