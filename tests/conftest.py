"""Shared fixtures: in-memory store, recording transport and display."""

from __future__ import annotations

import json
from collections import deque
from io import BytesIO
from pathlib import Path
from typing import Any

import numpy as np
import pytest
from PIL import Image

from slm_app.core.config import AppConfig, config_from_dict
from slm_app.core.dispatcher import CommandDispatcher, DeviceContext
from slm_app.storage.memory import MemoryFileStore
from slm_app.transport.base import InboundMessage, TransportBase

SERIAL = "SN42"
BASE_DIR = Path("patterns")
CUSTOM_DIR = BASE_DIR / "custom_patterns"
FLAT_DIR = Path("patterns/flatness")
WIDTH, HEIGHT = 8, 6


def png_bytes(samples: np.ndarray) -> bytes:
    buffer = BytesIO()
    Image.fromarray(np.asarray(samples, dtype=np.uint8)).save(buffer, format="PNG")
    return buffer.getvalue()


def config_dict(**overrides: Any) -> dict:
    data: dict = {
        "microscope": {"serial_nr": SERIAL},
        "dir_path": {"base_patterns": str(BASE_DIR), "flatness_corr_patterns": str(FLAT_DIR)},
        "screen": {"size": [WIDTH, HEIGHT], "fullscreen": False},
        "compute_pattern": {
            "slm_calib_scaling": {"wavelength": [450, 500, 550], "scale_factor": [200.0, 255.0, 230.0]},
            "add_flatness_correction": False,
        },
        "image_file_extensions": [".png", ".bmp"],
        "defaults": {
            "fresnel": 0,
            "wavelength": 500,
            "pattern": {
                "spot": {
                    "position_xy": [4, 3],
                    "diameter": 4,
                    "gradient_xy": [0.0, 0.0],
                    "background_gradient_xy": [0.5, 0.0],
                }
            },
        },
    }
    for key, value in overrides.items():
        data[key] = value
    return data


def make_config(**overrides: Any) -> AppConfig:
    return config_from_dict(config_dict(**overrides))


class RecordingTransport(TransportBase):
    def __init__(self) -> None:
        self.subscriptions: list[str] = []
        self.published: list[tuple[str, dict]] = []
        self.inbox: deque[InboundMessage] = deque()

    def push(self, message: dict | bytes, topic: str = f"{SERIAL}/gui/aim") -> None:
        payload = message if isinstance(message, bytes) else json.dumps(message).encode("utf-8")
        self.inbox.append(InboundMessage(topic=topic, payload=payload))

    def subscribe(self, topic: str) -> None:
        self.subscriptions.append(topic)

    def publish(self, topic: str, payload: bytes) -> None:
        self.published.append((topic, json.loads(payload)))

    def poll(self) -> InboundMessage | None:
        return self.inbox.popleft() if self.inbox else None

    def commands(self) -> list[str]:
        return [msg["data"]["command"] for _, msg in self.published]

    def last(self) -> dict:
        return self.published[-1][1]


class RecordingDisplay:
    def __init__(self) -> None:
        self.frames: list[np.ndarray] = []
        self.quit_polls = 0

    def show_gray(self, image: np.ndarray) -> None:
        self.frames.append(image.copy())

    def poll_quit(self) -> bool:
        self.quit_polls += 1
        return True


class FakeReboot:
    def __init__(self, fail: bool = False) -> None:
        self.calls = 0
        self.fail = fail

    def reboot(self) -> None:
        self.calls += 1
        if self.fail:
            raise RuntimeError("missing command: systemctl")


@pytest.fixture
def store() -> MemoryFileStore:
    return MemoryFileStore()


@pytest.fixture
def config() -> AppConfig:
    return make_config()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def display() -> RecordingDisplay:
    return RecordingDisplay()


@pytest.fixture
def reboot() -> FakeReboot:
    return FakeReboot()


@pytest.fixture
def dispatcher(config, transport, display, store, reboot) -> CommandDispatcher:
    return CommandDispatcher(
        config=config,
        transport=transport,
        display=display,
        store=store,
        reboot_runner=reboot,
    )


@pytest.fixture
def ctx(config, store) -> DeviceContext:
    return DeviceContext.from_defaults(config, store)
