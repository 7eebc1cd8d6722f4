"""SLM phase pattern computation."""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Sequence, Tuple

import numpy as np
from PIL import Image

from slm_app.core.config import AppConfig
from slm_app.core.models import DeviceState, SpotPattern
from slm_app.patterns.cache import TWO_PI, ArrayCache
from slm_app.patterns.files import resolve_flatness_file, resolve_pattern_file
from slm_app.storage.base import FileStoreBase

# Blaze grating: reference wavelength (nm), max phase excursion (rad) in 8-bit mode
# and the offset factor keeping the ramp positive.
BLAZE_REFERENCE_NM = 488.0
BLAZE_PHI_MAX = 80.0
BLAZE_OFFSET = 1.1

PIXEL_PITCH_NM = 12_500.0

log = logging.getLogger("slm_app")


def pixel_grid(shape: Tuple[int, int]) -> Tuple[np.ndarray, np.ndarray]:
    """Integer pixel coordinates (x = column, y = row) as float arrays."""
    rows, cols = shape
    yy, xx = np.mgrid[0:rows, 0:cols]
    return xx.astype(np.float64), yy.astype(np.float64)


def spot_field(spot: SpotPattern, xx: np.ndarray, yy: np.ndarray) -> np.ndarray:
    cx, cy = spot.position_xy
    inside = (xx - cx) ** 2 + (yy - cy) ** 2 < (spot.diameter / 2.0) ** 2
    gx, gy = spot.gradient_xy
    bx, by = spot.background_gradient_xy
    return np.where(inside, gx * xx + gy * yy, bx * xx + by * yy)


def blaze_term(xx: np.ndarray, wavelength: int) -> np.ndarray:
    """Linear ramp along x that moves the zero order off the detector."""
    width = xx.shape[1]
    wvlen_fact = TWO_PI * BLAZE_REFERENCE_NM / float(wavelength)
    slope = -BLAZE_PHI_MAX * wvlen_fact / width
    return slope * xx + BLAZE_PHI_MAX * wvlen_fact * BLAZE_OFFSET


def fresnel_term(xx: np.ndarray, yy: np.ndarray, power: int, wavelength: int) -> np.ndarray:
    """Thin-lens quadratic phase centred on the frame."""
    rows, cols = xx.shape
    xc, yc = cols / 2.0, rows / 2.0
    pre_factor = PIXEL_PITCH_NM ** 2 * np.pi * (power * 1e-9) / float(wavelength)
    return pre_factor * ((xx - xc) ** 2 + (yy - yc) ** 2)


def select_scale_factor(wavelengths: Sequence[int], factors: Sequence[float], wavelength: int) -> float:
    """
    Scale factor for ``wavelength``: the exact entry if present, otherwise the
    closest known wavelength; on a tie the earlier table entry wins.
    """
    if not wavelengths:
        raise ValueError("no known wavelengths available")
    if wavelength in wavelengths:
        return float(factors[list(wavelengths).index(wavelength)])
    idx = min(range(len(wavelengths)), key=lambda i: abs(wavelengths[i] - wavelength))
    return float(factors[idx])


def quantize_phase(phase: np.ndarray, scale: float) -> np.ndarray:
    """Wrap into [0, 2π), map to [0, scale] and truncate to uint8."""
    wrapped = np.mod(phase, TWO_PI)
    # Float rounding can land exactly on 2π for tiny negative inputs.
    wrapped[wrapped >= TWO_PI] = 0.0
    scaled = np.floor(wrapped / TWO_PI * scale)
    return np.clip(scaled, 0, 255).astype(np.uint8)


class PatternEngine:
    """
    Builds the 8-bit frame for the SLM from device state.
    """

    def __init__(self, config: AppConfig, store: FileStoreBase) -> None:
        self.config = config
        self.store = store

    @property
    def shape(self) -> Tuple[int, int]:
        return self.config.screen.shape

    def base_term(self, state: DeviceState, cache: ArrayCache, xx: np.ndarray, yy: np.ndarray) -> np.ndarray:
        if isinstance(state.pattern, SpotPattern):
            return spot_field(state.pattern, xx, yy)
        path = resolve_pattern_file(state.pattern, self.config, self.store)
        # Copy so the cached raster is never modified in place.
        return np.array(cache.get_or_load(path, self.shape), dtype=np.float64)

    def compute(self, state: DeviceState, cache: ArrayCache) -> np.ndarray:
        if state.wavelength <= 0:
            raise ValueError(f"wavelength must be positive, got {state.wavelength}")
        xx, yy = pixel_grid(self.shape)
        pattern = self.base_term(state, cache, xx, yy)

        if self.config.compute.add_flatness_correction:
            path = resolve_flatness_file(state.wavelength, self.config, self.store)
            flat = cache.get_or_load(path, self.shape)
            if flat.shape != pattern.shape:
                raise ValueError(
                    f"flatness correction {path} has shape {flat.shape}, frame is {pattern.shape}"
                )
            pattern += flat

        pattern += blaze_term(xx, state.wavelength)

        if state.fresnel != 0:
            pattern += fresnel_term(xx, yy, state.fresnel, state.wavelength)

        scaling = self.config.compute.scaling
        scale = select_scale_factor(scaling.wavelengths, scaling.scale_factors, state.wavelength)
        frame = quantize_phase(pattern, scale)

        if self.config.compute.save_computed_pattern:
            self._save_debug(frame)
        return frame

    def _save_debug(self, frame: np.ndarray) -> None:
        buffer = BytesIO()
        Image.fromarray(frame).save(buffer, format="PNG")
        self.store.write_bytes(self.config.compute.debug_output_path, buffer.getvalue())
        log.debug("Saved computed pattern to %s", self.config.compute.debug_output_path)
