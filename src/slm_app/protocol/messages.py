"""
JSON message envelope exchanged with the GUI, laser and calibration peers.

Wire shape::

    {"type": "log" | "device" | "status",
     "data": {"device": "embedded" | "lasers" | "aim",
              "command": "<name>",
              ...command fields}}

Every command is a small dataclass; ``parse_message`` checks both the device
and the command tag and rejects unknown combinations.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Tuple, Union

from slm_app.core.models import (
    CorrectionPatternDeltas,
    LaserState,
    PatternParseError,
    PatternSelector,
    parse_pattern,
    pattern_to_dict,
)


class ProtocolError(ValueError):
    """Raised for malformed or unexpected protocol messages."""


class MessageType(str, Enum):
    LOG = "log"
    DEVICE = "device"
    STATUS = "status"


def _int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"field {key!r} must be an integer, got {value!r}")
    return value


def _number(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(f"field {key!r} must be a number, got {value!r}")
    return value


def _str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ProtocolError(f"field {key!r} must be a string, got {value!r}")
    return value


def _pattern(data: Dict[str, Any]) -> PatternSelector:
    if "pattern" not in data:
        raise ProtocolError("field 'pattern' is missing")
    try:
        return parse_pattern(data["pattern"])
    except PatternParseError as exc:
        raise ProtocolError(str(exc)) from exc


# ---- embedded ----

@dataclass(slots=True)
class InitDone:
    DEVICE: ClassVar[str] = "embedded"
    COMMAND: ClassVar[str] = "initdone"


@dataclass(slots=True)
class EmbeddedSet:
    DEVICE: ClassVar[str] = "embedded"
    COMMAND: ClassVar[str] = "set"


# ---- lasers ----

@dataclass(slots=True)
class LaserGet:
    DEVICE: ClassVar[str] = "lasers"
    COMMAND: ClassVar[str] = "get"


@dataclass(slots=True)
class LaserAvailablePatterns:
    DEVICE: ClassVar[str] = "lasers"
    COMMAND: ClassVar[str] = "availablePatterns"


@dataclass(slots=True)
class LaserSet:
    DEVICE: ClassVar[str] = "lasers"
    COMMAND: ClassVar[str] = "set"

    lasers: List[LaserState] = field(default_factory=list)

    def payload(self) -> Dict[str, Any]:
        return {
            "lasers": [
                {"name": l.name, "state": l.state, "wavelength": l.wavelength, "intensity": l.intensity}
                for l in self.lasers
            ]
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "LaserSet":
        raw = data.get("lasers")
        if not isinstance(raw, list):
            raise ProtocolError(f"field 'lasers' must be a list, got {raw!r}")
        lasers = []
        for item in raw:
            if not isinstance(item, dict):
                raise ProtocolError(f"laser entry must be an object, got {item!r}")
            lasers.append(
                LaserState(
                    name=_str(item, "name"),
                    state=_int(item, "state"),
                    wavelength=_int(item, "wavelength"),
                    intensity=_number(item, "intensity"),
                )
            )
        return cls(lasers=lasers)


# ---- aim ----

@dataclass(slots=True)
class AimGet:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "get"


@dataclass(slots=True)
class AimGetAllPatterns:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "getAllPatterns"


@dataclass(slots=True)
class AimSet:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "set"

    pattern: PatternSelector
    fresnel: int

    def payload(self) -> Dict[str, Any]:
        return {"pattern": pattern_to_dict(self.pattern), "fresnel": self.fresnel}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimSet":
        return cls(pattern=_pattern(data), fresnel=_int(data, "fresnel"))


@dataclass(slots=True)
class AimPreStack:
    """Same payload as ``set``; acknowledged with a "PreStack done" response."""
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "PreStack"

    pattern: PatternSelector
    fresnel: int

    def payload(self) -> Dict[str, Any]:
        return {"pattern": pattern_to_dict(self.pattern), "fresnel": self.fresnel}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimPreStack":
        return cls(pattern=_pattern(data), fresnel=_int(data, "fresnel"))


@dataclass(slots=True)
class AimSetPattern:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "setpattern"

    pattern: PatternSelector

    def payload(self) -> Dict[str, Any]:
        return {"pattern": pattern_to_dict(self.pattern)}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimSetPattern":
        return cls(pattern=_pattern(data))


@dataclass(slots=True)
class AimSetFresnel:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "setfresnel"

    value: int

    def payload(self) -> Dict[str, Any]:
        return {"value": self.value}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimSetFresnel":
        return cls(value=_int(data, "value"))


@dataclass(slots=True)
class AimResponse:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "response"

    reply: str

    def payload(self) -> Dict[str, Any]:
        return {"reply": self.reply}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimResponse":
        return cls(reply=_str(data, "reply"))


@dataclass(slots=True)
class AimUploadImage:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "uploadimage"

    name: str
    imagedata: str

    def payload(self) -> Dict[str, Any]:
        return {"name": self.name, "imagedata": self.imagedata}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimUploadImage":
        return cls(name=_str(data, "name"), imagedata=_str(data, "imagedata"))


@dataclass(slots=True)
class AimDeleteImage:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "deleteimage"

    name: str

    def payload(self) -> Dict[str, Any]:
        return {"name": self.name}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimDeleteImage":
        return cls(name=_str(data, "name"))


@dataclass(slots=True)
class AimDisconnect:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "disconnect"


@dataclass(slots=True)
class AimSetCorrectionPatternDeltas:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "setCorrectionPatternDeltas"

    deltas: CorrectionPatternDeltas

    def payload(self) -> Dict[str, Any]:
        return {
            "wavelength": self.deltas.wavelength,
            "imagedata": self.deltas.imagedata,
            "shape_xy": list(self.deltas.shape),
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimSetCorrectionPatternDeltas":
        shape = data.get("shape_xy")
        if (
            not isinstance(shape, list)
            or len(shape) != 2
            or not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in shape)
        ):
            raise ProtocolError(f"field 'shape_xy' must be two non-negative integers, got {shape!r}")
        return cls(
            deltas=CorrectionPatternDeltas(
                wavelength=_int(data, "wavelength"),
                imagedata=_str(data, "imagedata"),
                shape=(shape[0], shape[1]),
            )
        )


@dataclass(slots=True)
class AimCorrectionDeltasAck:
    """Outbound acknowledgment; shares its command name with the inbound request."""
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "setCorrectionPatternDeltas"

    wavelength: int
    success: bool

    def payload(self) -> Dict[str, Any]:
        return {"wavelength": self.wavelength, "success": self.success}


@dataclass(slots=True)
class AimAvailablePatterns:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "availablePatterns"

    patterns: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"patterns": self.patterns}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimAvailablePatterns":
        patterns = data.get("patterns")
        if not isinstance(patterns, dict):
            raise ProtocolError(f"field 'patterns' must be an object, got {patterns!r}")
        return cls(patterns=patterns)


@dataclass(slots=True)
class AimReboot:
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "reboot"


@dataclass(slots=True)
class AimState:
    """Current-state report: wavelength, fresnel power and the active pattern."""
    DEVICE: ClassVar[str] = "aim"
    COMMAND: ClassVar[str] = "state"

    wavelength: int
    fresnel: int
    pattern: PatternSelector

    def payload(self) -> Dict[str, Any]:
        return {"wavelength": self.wavelength, "fresnel": self.fresnel, "pattern": pattern_to_dict(self.pattern)}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AimState":
        return cls(wavelength=_int(data, "wavelength"), fresnel=_int(data, "fresnel"), pattern=_pattern(data))


EmbeddedCommand = Union[InitDone, EmbeddedSet]
LaserCommand = Union[LaserGet, LaserAvailablePatterns, LaserSet]
AimCommand = Union[
    AimGet,
    AimGetAllPatterns,
    AimSet,
    AimPreStack,
    AimSetPattern,
    AimSetFresnel,
    AimResponse,
    AimUploadImage,
    AimDeleteImage,
    AimDisconnect,
    AimSetCorrectionPatternDeltas,
    AimCorrectionDeltasAck,
    AimAvailablePatterns,
    AimReboot,
    AimState,
]
Command = Union[EmbeddedCommand, LaserCommand, AimCommand]

# Commands accepted on the wire. AimCorrectionDeltasAck is outbound only.
INBOUND_COMMANDS: Tuple[type, ...] = (
    InitDone,
    EmbeddedSet,
    LaserGet,
    LaserAvailablePatterns,
    LaserSet,
    AimGet,
    AimGetAllPatterns,
    AimSet,
    AimPreStack,
    AimSetPattern,
    AimSetFresnel,
    AimResponse,
    AimUploadImage,
    AimDeleteImage,
    AimDisconnect,
    AimSetCorrectionPatternDeltas,
    AimAvailablePatterns,
    AimReboot,
    AimState,
)

_PARSERS: Dict[Tuple[str, str], Callable[[Dict[str, Any]], Command]] = {
    (cls.DEVICE, cls.COMMAND): getattr(cls, "from_payload", lambda _data, _cls=cls: _cls())
    for cls in INBOUND_COMMANDS
}
DEVICES = frozenset(device for device, _ in _PARSERS)


@dataclass(slots=True)
class Message:
    type: MessageType
    data: Command

    def to_dict(self) -> Dict[str, Any]:
        payload = self.data.payload() if hasattr(self.data, "payload") else {}
        return {
            "type": self.type.value,
            "data": {"device": self.data.DEVICE, "command": self.data.COMMAND, **payload},
        }


def device_message(command: Command) -> Message:
    return Message(type=MessageType.DEVICE, data=command)


def parse_message(raw: bytes | str) -> Message:
    try:
        doc = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(doc, dict):
        raise ProtocolError("message must be a JSON object")

    try:
        m_type = MessageType(doc.get("type"))
    except ValueError:
        raise ProtocolError(f"unknown message type {doc.get('type')!r}") from None

    data = doc.get("data")
    if not isinstance(data, dict):
        raise ProtocolError("message 'data' must be an object")
    device = data.get("device")
    if not isinstance(device, str) or device not in DEVICES:
        raise ProtocolError(f"unknown device {device!r}")
    command = data.get("command")
    parser = _PARSERS.get((device, command)) if isinstance(command, str) else None
    if parser is None:
        raise ProtocolError(f"unknown command {command!r} for device {device!r}")
    return Message(type=m_type, data=parser(data))


def encode_message(message: Message) -> bytes:
    return json.dumps(message.to_dict(), separators=(",", ":")).encode("utf-8")


def pretty(message: Message) -> str:
    return json.dumps(message.to_dict(), indent=2)
