from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from conftest import BASE_DIR, CUSTOM_DIR, FLAT_DIR, HEIGHT, WIDTH, make_config, png_bytes

from slm_app.core.models import CustomPattern, DeviceState, FilePattern, SpotPattern
from slm_app.patterns.cache import PHASE_STEP, ArrayCache
from slm_app.patterns.engine import (
    BLAZE_OFFSET,
    BLAZE_PHI_MAX,
    PatternEngine,
    blaze_term,
    fresnel_term,
    pixel_grid,
    quantize_phase,
    select_scale_factor,
    spot_field,
)
from slm_app.patterns.files import (
    PatternNotFoundError,
    non_factory_path,
    resolve_flatness_file,
    resolve_pattern_file,
)
from slm_app.storage.memory import MemoryFileStore

KNOWN = [450, 500, 550]
FACTORS = [1.0, 2.0, 3.0]
FLAT_SPOT = SpotPattern(position_xy=(0, 0), diameter=0, gradient_xy=(0, 0), background_gradient_xy=(0, 0))


def test_scale_factor_exact_match() -> None:
    assert select_scale_factor(KNOWN, FACTORS, 500) == 2.0


def test_scale_factor_closest_wavelength() -> None:
    assert select_scale_factor(KNOWN, FACTORS, 530) == 3.0
    assert select_scale_factor(KNOWN, FACTORS, 100) == 1.0


def test_scale_factor_tie_prefers_earlier_entry() -> None:
    assert select_scale_factor(KNOWN, FACTORS, 525) == 2.0
    assert select_scale_factor([550, 500], [3.0, 2.0], 525) == 3.0


def test_scale_factor_empty_table() -> None:
    with pytest.raises(ValueError, match="no known wavelengths"):
        select_scale_factor([], [], 500)


def test_quantize_wraps_instead_of_clamping() -> None:
    out = quantize_phase(np.array([-0.1, 2 * np.pi - 0.1]), 255.0)
    assert out[0] == out[1]
    assert out.dtype == np.uint8

    out = quantize_phase(np.array([0.0, np.pi, 2 * np.pi, -2 * np.pi, 4 * np.pi + np.pi]), 255.0)
    assert out.tolist() == [0, 127, 0, 0, 127]


def test_quantize_saturates_large_scale() -> None:
    assert quantize_phase(np.array([2 * np.pi - 1e-3]), 1000.0)[0] == 255


def test_spot_field_inside_and_outside() -> None:
    xx, yy = pixel_grid((5, 5))
    spot = SpotPattern(position_xy=(2, 2), diameter=3, gradient_xy=(1.0, 0.0), background_gradient_xy=(0.0, 2.0))
    field = spot_field(spot, xx, yy)
    assert field[2, 3] == 3.0  # inside: 1 * x
    assert field[0, 0] == 0.0  # outside: 2 * y
    assert field[4, 0] == 8.0


def test_blaze_and_fresnel_terms() -> None:
    xx, yy = pixel_grid((HEIGHT, WIDTH))
    blaze = blaze_term(xx, 488)
    assert blaze[0, 0] == pytest.approx(BLAZE_PHI_MAX * 2 * np.pi * BLAZE_OFFSET)
    assert np.all(np.diff(blaze, axis=1) < 0)
    assert np.all(np.diff(blaze, axis=0) == 0)

    lens = fresnel_term(xx, yy, 5, 500)
    assert lens[HEIGHT // 2, WIDTH // 2] == 0.0
    assert lens[0, 0] > 0
    assert fresnel_term(xx, yy, -5, 500)[0, 0] == pytest.approx(-lens[0, 0])


def test_compute_is_idempotent(config) -> None:
    samples = (np.arange(HEIGHT * WIDTH) % 256).reshape(HEIGHT, WIDTH)
    store = MemoryFileStore({BASE_DIR / "gauss_size_10.png": png_bytes(samples)})
    engine = PatternEngine(config, store)
    cache = ArrayCache(store)
    state = DeviceState(wavelength=500, fresnel=3, pattern=FilePattern("gauss", {"size": "10"}))
    first = engine.compute(state, cache)
    second = engine.compute(state, cache)
    assert first.shape == (HEIGHT, WIDTH)
    assert first.dtype == np.uint8
    assert np.array_equal(first, second)
    # The cached raster must not pick up the correction terms.
    np.testing.assert_allclose(cache.get_or_load(BASE_DIR / "gauss_size_10.png"), samples * PHASE_STEP)


def test_compute_spot_matches_manual_terms(config, store) -> None:
    engine = PatternEngine(config, store)
    state = DeviceState(wavelength=500, fresnel=0, pattern=config.defaults.pattern)
    xx, yy = pixel_grid((HEIGHT, WIDTH))
    expected = spot_field(config.defaults.pattern, xx, yy)
    expected += blaze_term(xx, 500)
    assert np.array_equal(engine.compute(state, ArrayCache(store)), quantize_phase(expected, 255.0))


def test_compute_adds_flatness_correction() -> None:
    config = make_config(
        compute_pattern={
            "slm_calib_scaling": {"wavelength": [500], "scale_factor": [255.0]},
            "add_flatness_correction": True,
        }
    )
    flat = np.full((HEIGHT, WIDTH), 64)
    store = MemoryFileStore({FLAT_DIR / "flatness_wavelength_500.png": png_bytes(flat)})
    engine = PatternEngine(config, store)
    state = DeviceState(wavelength=500, fresnel=0, pattern=FLAT_SPOT)

    xx, _ = pixel_grid((HEIGHT, WIDTH))
    expected = np.zeros((HEIGHT, WIDTH)) + flat * PHASE_STEP
    expected += blaze_term(xx, 500)
    assert np.array_equal(engine.compute(state, ArrayCache(store)), quantize_phase(expected, 255.0))

    with pytest.raises(PatternNotFoundError, match="wavelength 600"):
        engine.compute(DeviceState(wavelength=600, fresnel=0, pattern=FLAT_SPOT), ArrayCache(store))


def test_debug_output_written_through_store() -> None:
    config = make_config(
        compute_pattern={
            "slm_calib_scaling": {"wavelength": [500], "scale_factor": [255.0]},
            "debug": {"save_computed_pattern_to_image_file": True, "output_path": "debug/out.png"},
        }
    )
    store = MemoryFileStore()
    PatternEngine(config, store).compute(DeviceState(500, 0, FLAT_SPOT), ArrayCache(store))
    assert store.is_file(Path("debug/out.png"))


def test_base_pattern_probes_extensions_in_order(config) -> None:
    pattern = FilePattern("gauss", {"size": "10", "shape": "round"})
    store = MemoryFileStore({BASE_DIR / "gauss_size_10_shape_round.bmp": b""})
    assert resolve_pattern_file(pattern, config, store) == BASE_DIR / "gauss_size_10_shape_round.bmp"

    store.write_bytes(BASE_DIR / "gauss_size_10_shape_round.png", b"")
    assert resolve_pattern_file(pattern, config, store) == BASE_DIR / "gauss_size_10_shape_round.png"


def test_base_pattern_uses_declared_property_order(config) -> None:
    store = MemoryFileStore({BASE_DIR / "gauss_shape_round_size_10.png": b""})
    assert resolve_pattern_file(FilePattern("gauss", {"shape": "round", "size": "10"}), config, store)
    with pytest.raises(PatternNotFoundError, match="gauss"):
        resolve_pattern_file(FilePattern("gauss", {"size": "10", "shape": "round"}), config, store)


def test_custom_and_spot_resolution(config, store) -> None:
    assert resolve_pattern_file(CustomPattern("mine.png"), config, store) == CUSTOM_DIR / "mine.png"
    with pytest.raises(ValueError):
        resolve_pattern_file(FLAT_SPOT, config, store)


def test_flatness_resolution_order(config) -> None:
    factory = FLAT_DIR / "flatness_wavelength_488_factory.png"
    store = MemoryFileStore({factory: b""})
    assert resolve_flatness_file(488, config, store) == factory

    plain_bmp = FLAT_DIR / "flatness_wavelength_488.bmp"
    store.write_bytes(plain_bmp, b"")
    assert resolve_flatness_file(488, config, store) == plain_bmp

    with pytest.raises(PatternNotFoundError, match="wavelength 561"):
        resolve_flatness_file(561, config, store)


def test_plain_flatness_file_shadows_factory_copy(config) -> None:
    plain = FLAT_DIR / "flatness_wavelength_488.png"
    store = MemoryFileStore({FLAT_DIR / "flatness_wavelength_488_factory.png": b"", plain: b""})
    assert resolve_flatness_file(488, config, store) == plain


def test_non_factory_path() -> None:
    path = FLAT_DIR / "flatness_wavelength_488_factory.png"
    assert non_factory_path(path) == FLAT_DIR / "flatness_wavelength_488.png"
    assert non_factory_path(FLAT_DIR / "flatness_wavelength_488.png") == FLAT_DIR / "flatness_wavelength_488.png"
