"""Application configuration loaded from YAML."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from slm_app.core.models import PatternParseError, PatternSelector, parse_pattern


DEFAULT_CONFIG_PATH = Path("config/default.yaml")

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")

DEFAULT_CONFIG: Dict[str, Any] = {
    "dir_path": {
        "base_patterns": "patterns",
        "flatness_corr_patterns": "patterns/flatness",
    },
    "mqtt": {
        "broker_ip": "127.0.0.1",
        "port": 1883,
        "keepalive_s": 60,
        "reconnect_min_s": 1,
        "reconnect_max_s": 120,
    },
    "screen": {
        "size": [1920, 1080],
        "fullscreen": True,
    },
    "compute_pattern": {
        "add_flatness_correction": False,
        "debug": {
            "save_computed_pattern_to_image_file": False,
            "output_path": "computed_pattern.png",
        },
    },
    "image_file_extensions": [".png", ".bmp"],
    "logging": {
        "log_level": "info",
        "log_dir": "logs",
    },
    "system": {
        "reboot_command": ["systemctl", "reboot"],
    },
    "loop": {
        "idle_sleep_s": 0.0,
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file is missing or invalid."""


@dataclass(slots=True)
class DirPaths:
    base_patterns: Path
    flatness_corr_patterns: Path

    @property
    def custom_patterns(self) -> Path:
        return self.base_patterns / "custom_patterns"


@dataclass(slots=True)
class MqttConfig:
    broker_ip: str
    port: int
    keepalive_s: int = 60
    reconnect_min_s: int = 1
    reconnect_max_s: int = 120


@dataclass(slots=True)
class ScreenConfig:
    size: Tuple[int, int]
    fullscreen: bool

    @property
    def shape(self) -> Tuple[int, int]:
        """Frame shape as (rows, cols)."""
        width, height = self.size
        return height, width


@dataclass(slots=True)
class CalibScaling:
    """Per-wavelength SLM scale factors; both lists share indices."""
    wavelengths: List[int]
    scale_factors: List[float]


@dataclass(slots=True)
class ComputeConfig:
    scaling: CalibScaling
    add_flatness_correction: bool
    save_computed_pattern: bool = False
    debug_output_path: Path = Path("computed_pattern.png")


@dataclass(slots=True)
class LoggingConfig:
    log_level: str = "info"
    log_dir: str = "logs"


@dataclass(slots=True)
class DefaultState:
    fresnel: int
    wavelength: int
    pattern: PatternSelector


@dataclass(slots=True)
class AppConfig:
    serial_nr: str
    dir_path: DirPaths
    mqtt: MqttConfig
    screen: ScreenConfig
    compute: ComputeConfig
    image_file_extensions: List[str]
    logging: LoggingConfig
    defaults: DefaultState
    reboot_command: List[str] = field(default_factory=lambda: ["systemctl", "reboot"])
    idle_sleep_s: float = 0.0

    @property
    def main_topic(self) -> str:
        return self.serial_nr

    def subtopic(self, name: str) -> str:
        return f"{self.main_topic}/{name}"

    @property
    def aim_topic(self) -> str:
        return self.subtopic("aim")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def _normalise_extension(ext: Any) -> str:
    ext = str(ext).strip()
    if not ext:
        raise ConfigError("image_file_extensions entries must not be empty")
    return ext if ext.startswith(".") else f".{ext}"


def _require(section: Dict[str, Any], key: str, where: str) -> Any:
    if key not in section or section[key] is None:
        raise ConfigError(f"{where}.{key} must be configured")
    return section[key]


def config_from_dict(data: Dict[str, Any]) -> AppConfig:
    """Build an AppConfig from a (partial) config mapping merged over the defaults."""
    merged = _deep_merge(DEFAULT_CONFIG, data)
    try:
        return _build(merged)
    except ConfigError:
        raise
    except (TypeError, ValueError, KeyError) as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _build(merged: Dict[str, Any]) -> AppConfig:
    microscope = merged.get("microscope") or {}
    serial_nr = str(_require(microscope, "serial_nr", "microscope")).strip()
    if not serial_nr:
        raise ConfigError("microscope.serial_nr must not be empty")

    dirs = merged["dir_path"]
    dir_path = DirPaths(
        base_patterns=Path(dirs["base_patterns"]),
        flatness_corr_patterns=Path(dirs["flatness_corr_patterns"]),
    )

    mqtt_cfg = merged["mqtt"]
    port = int(mqtt_cfg["port"])
    if not 1 <= port <= 65535:
        raise ConfigError(f"mqtt.port must be 1-65535, got {port}")
    mqtt = MqttConfig(
        broker_ip=str(mqtt_cfg["broker_ip"]),
        port=port,
        keepalive_s=int(mqtt_cfg.get("keepalive_s", 60)),
        reconnect_min_s=int(mqtt_cfg.get("reconnect_min_s", 1)),
        reconnect_max_s=int(mqtt_cfg.get("reconnect_max_s", 120)),
    )

    screen_cfg = merged["screen"]
    size = screen_cfg["size"]
    if not isinstance(size, (list, tuple)) or len(size) != 2:
        raise ConfigError(f"screen.size must be [width, height], got {size!r}")
    width, height = int(size[0]), int(size[1])
    if width <= 0 or height <= 0:
        raise ConfigError(f"screen.size must be positive, got {size!r}")
    screen = ScreenConfig(size=(width, height), fullscreen=bool(screen_cfg.get("fullscreen", True)))

    compute_cfg = merged["compute_pattern"]
    scaling_cfg = _require(compute_cfg, "slm_calib_scaling", "compute_pattern")
    wavelengths = [int(w) for w in _require(scaling_cfg, "wavelength", "compute_pattern.slm_calib_scaling")]
    factors = [float(f) for f in _require(scaling_cfg, "scale_factor", "compute_pattern.slm_calib_scaling")]
    if not wavelengths:
        raise ConfigError("compute_pattern.slm_calib_scaling.wavelength must not be empty")
    if len(wavelengths) != len(factors):
        raise ConfigError(
            "compute_pattern.slm_calib_scaling: wavelength and scale_factor lists differ in length "
            f"({len(wavelengths)} vs {len(factors)})"
        )
    debug_cfg: Optional[Dict[str, Any]] = compute_cfg.get("debug") or {}
    compute = ComputeConfig(
        scaling=CalibScaling(wavelengths=wavelengths, scale_factors=factors),
        add_flatness_correction=bool(compute_cfg.get("add_flatness_correction", False)),
        save_computed_pattern=bool(debug_cfg.get("save_computed_pattern_to_image_file", False)),
        debug_output_path=Path(debug_cfg.get("output_path") or "computed_pattern.png"),
    )

    extensions = [_normalise_extension(e) for e in merged["image_file_extensions"]]
    if not extensions:
        raise ConfigError("image_file_extensions must not be empty")

    log_cfg = merged["logging"]
    level = str(log_cfg.get("log_level", "info")).lower()
    if level not in LOG_LEVELS:
        raise ConfigError(f"logging.log_level must be one of {', '.join(LOG_LEVELS)}, got {level!r}")
    logging_cfg = LoggingConfig(log_level=level, log_dir=str(log_cfg.get("log_dir", "logs")))

    defaults_cfg = merged.get("defaults") or {}
    try:
        default_pattern = parse_pattern(_require(defaults_cfg, "pattern", "defaults"))
    except PatternParseError as exc:
        raise ConfigError(f"defaults.pattern is invalid: {exc}") from exc
    default_wavelength = int(_require(defaults_cfg, "wavelength", "defaults"))
    if default_wavelength <= 0:
        raise ConfigError(f"defaults.wavelength must be positive, got {default_wavelength}")
    defaults = DefaultState(
        fresnel=int(defaults_cfg.get("fresnel", 0)),
        wavelength=default_wavelength,
        pattern=default_pattern,
    )

    reboot_command = [str(part) for part in merged["system"]["reboot_command"]]
    if not reboot_command:
        raise ConfigError("system.reboot_command must not be empty")

    idle_sleep_s = float(merged["loop"].get("idle_sleep_s", 0.0))
    if idle_sleep_s < 0:
        raise ConfigError(f"loop.idle_sleep_s must not be negative, got {idle_sleep_s}")

    return AppConfig(
        serial_nr=serial_nr,
        dir_path=dir_path,
        mqtt=mqtt,
        screen=screen,
        compute=compute,
        image_file_extensions=extensions,
        logging=logging_cfg,
        defaults=defaults,
        reboot_command=reboot_command,
        idle_sleep_s=idle_sleep_s,
    )


def load_config(path: Path | None = None) -> AppConfig:
    cfg_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    return config_from_dict(_read_config_file(cfg_path))
