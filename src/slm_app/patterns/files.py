"""Resolve pattern selectors and wavelengths to files on disk."""

from __future__ import annotations

from pathlib import Path

from slm_app.core.config import AppConfig
from slm_app.core.models import CustomPattern, FilePattern, PatternSelector, SpotPattern, pattern_to_dict
from slm_app.patterns.catalog import NAME_DELIMITER
from slm_app.storage.base import FileStoreBase

FLATNESS_PREFIX = "flatness_wavelength_"
FACTORY_SUFFIX = "_factory"
# User-maintained correction first, then the factory-shipped one.
FLATNESS_VARIANTS = ("", FACTORY_SUFFIX)


class PatternNotFoundError(FileNotFoundError):
    """No file on disk matches the requested pattern or wavelength."""


def custom_pattern_path(config: AppConfig, name: str) -> Path:
    filename = Path(name).name
    if not filename or filename in (".", "..") or filename != name:
        raise ValueError(f"Invalid custom pattern name: {name!r}")
    return config.dir_path.custom_patterns / filename


def pattern_stem(pattern: FilePattern) -> str:
    parts = [pattern.family]
    for prop, value in pattern.properties.items():
        parts.extend((prop, value))
    return NAME_DELIMITER.join(parts)


def resolve_pattern_file(pattern: PatternSelector, config: AppConfig, store: FileStoreBase) -> Path:
    if isinstance(pattern, SpotPattern):
        raise ValueError("Cannot get file path for the spot pattern")
    if isinstance(pattern, CustomPattern):
        return custom_pattern_path(config, pattern.filename)
    if isinstance(pattern, FilePattern):
        stem = pattern_stem(pattern)
        for ext in config.image_file_extensions:
            path = config.dir_path.base_patterns / f"{stem}{ext}"
            if store.is_file(path):
                return path
        raise PatternNotFoundError(f"Can't find file for base pattern {pattern_to_dict(pattern)}")
    raise TypeError(f"Unknown pattern selector: {pattern!r}")


def resolve_flatness_file(wavelength: int, config: AppConfig, store: FileStoreBase) -> Path:
    stem = f"{FLATNESS_PREFIX}{wavelength}"
    for variant in FLATNESS_VARIANTS:
        for ext in config.image_file_extensions:
            path = config.dir_path.flatness_corr_patterns / f"{stem}{variant}{ext}"
            if store.is_file(path):
                return path
    raise PatternNotFoundError(f"No flatness correction pattern for wavelength {wavelength}")


def non_factory_path(path: Path) -> Path:
    return path.with_name(path.name.replace(FACTORY_SUFFIX, ""))
