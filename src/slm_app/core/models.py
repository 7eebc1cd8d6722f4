"""
Core data models for device state and pattern selection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union


class PatternParseError(ValueError):
    """Raised when a pattern selector payload is malformed."""


@dataclass(slots=True)
class SpotPattern:
    """
    Synthetic two-level gradient field: one gradient inside a disk, another outside.
    """
    position_xy: Tuple[float, float]
    diameter: float
    gradient_xy: Tuple[float, float]
    background_gradient_xy: Tuple[float, float]


@dataclass(slots=True)
class FilePattern:
    """
    Pattern read from ``<family>_<prop>_<value>...`` under the base pattern dir.

    ``properties`` keeps the order the pairs were declared in; the file name is
    built in that order.
    """
    family: str
    properties: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class CustomPattern:
    filename: str


PatternSelector = Union[SpotPattern, FilePattern, CustomPattern]


@dataclass(slots=True)
class DeviceState:
    wavelength: int
    fresnel: int
    pattern: PatternSelector


@dataclass(slots=True)
class LaserState:
    name: str
    state: int
    wavelength: int
    intensity: float


@dataclass(slots=True)
class CorrectionPatternDeltas:
    """Additive delta for one wavelength's flatness correction raster."""
    wavelength: int
    imagedata: str
    shape: Tuple[int, int]


def _pair(value: Any, what: str) -> Tuple[float, float]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise PatternParseError(f"{what} must be a pair of numbers, got {value!r}")
    try:
        return float(value[0]), float(value[1])
    except (TypeError, ValueError):
        raise PatternParseError(f"{what} must be a pair of numbers, got {value!r}") from None


def _parse_spot(body: Any) -> SpotPattern:
    if not isinstance(body, dict):
        raise PatternParseError(f"spot pattern must be an object, got {body!r}")
    missing = [k for k in ("position_xy", "diameter", "gradient_xy", "background_gradient_xy") if k not in body]
    if missing:
        raise PatternParseError(f"spot pattern missing fields: {', '.join(missing)}")
    try:
        diameter = float(body["diameter"])
    except (TypeError, ValueError):
        raise PatternParseError(f"spot diameter must be a number, got {body['diameter']!r}") from None
    return SpotPattern(
        position_xy=_pair(body["position_xy"], "position_xy"),
        diameter=diameter,
        gradient_xy=_pair(body["gradient_xy"], "gradient_xy"),
        background_gradient_xy=_pair(body["background_gradient_xy"], "background_gradient_xy"),
    )


def parse_pattern(raw: Any) -> PatternSelector:
    """
    Parse a pattern selector from its JSON form.

    Accepted shapes::

        {"spot": {"position_xy": [x, y], "diameter": d,
                  "gradient_xy": [gx, gy], "background_gradient_xy": [bx, by]}}
        {"custom": {"filename": "upload.png"}}
        {"<family>": {"<prop>": "<value>", ...}}

    The file-based form must be a map with exactly one entry.
    """
    if not isinstance(raw, dict):
        raise PatternParseError(f"pattern must be an object, got {raw!r}")
    if len(raw) != 1:
        raise PatternParseError(f"pattern must have exactly one entry, got {len(raw)}")
    key, body = next(iter(raw.items()))

    if key == "spot":
        return _parse_spot(body)
    if key == "custom" and isinstance(body, dict) and set(body) == {"filename"}:
        filename = body["filename"]
        if not isinstance(filename, str) or not filename:
            raise PatternParseError(f"custom pattern filename must be a non-empty string, got {filename!r}")
        return CustomPattern(filename=filename)

    if not isinstance(body, dict):
        raise PatternParseError(f"properties of pattern {key!r} must be an object, got {body!r}")
    properties: Dict[str, str] = {}
    for prop, value in body.items():
        if not isinstance(value, str):
            raise PatternParseError(f"value of property {prop!r} must be a string, got {value!r}")
        properties[str(prop)] = value
    return FilePattern(family=str(key), properties=properties)


def pattern_to_dict(pattern: PatternSelector) -> Dict[str, Any]:
    if isinstance(pattern, SpotPattern):
        return {
            "spot": {
                "position_xy": list(pattern.position_xy),
                "diameter": pattern.diameter,
                "gradient_xy": list(pattern.gradient_xy),
                "background_gradient_xy": list(pattern.background_gradient_xy),
            }
        }
    if isinstance(pattern, CustomPattern):
        return {"custom": {"filename": pattern.filename}}
    if isinstance(pattern, FilePattern):
        return {pattern.family: dict(pattern.properties)}
    raise TypeError(f"Unknown pattern selector: {pattern!r}")
