"""Decoders for Thingy:52 environment and UI notification frames.

Every decoder takes the raw notification bytes and returns an immutable
reading. Frames are little-endian and fixed width; a frame shorter than its
format raises MalformedPayload. Trailing bytes beyond the format are ignored.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

Buffer = bytes | bytearray | memoryview


class MalformedPayload(ValueError):
    """Raised when a notification frame is shorter than its fixed format."""

    def __init__(self, kind: str, expected: int, actual: int) -> None:
        super().__init__(f"{kind} frame needs {expected} bytes, got {actual}")
        self.kind = kind
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class Temperature:
    celsius: float


@dataclass(frozen=True)
class Pressure:
    hpa: float


@dataclass(frozen=True)
class Humidity:
    percent: int


@dataclass(frozen=True)
class Gas:
    eco2: int
    tvoc: int


@dataclass(frozen=True)
class Color:
    red: int
    green: int
    blue: int
    clear: int


@dataclass(frozen=True)
class Button:
    pressed: bool


Reading = Temperature | Pressure | Humidity | Gas | Color | Button

_TEMPERATURE = struct.Struct("<bB")
_PRESSURE = struct.Struct("<IB")
_HUMIDITY = struct.Struct("<B")
_GAS = struct.Struct("<HH")
_COLOR = struct.Struct("<HHHH")
_BUTTON = struct.Struct("<B")


def _unpack(kind: str, fmt: struct.Struct, data: Buffer) -> tuple:
    if len(data) < fmt.size:
        raise MalformedPayload(kind, fmt.size, len(data))
    return fmt.unpack_from(data)


def decode_temperature(data: Buffer) -> Temperature:
    integer, decimal = _unpack("temperature", _TEMPERATURE, data)
    return Temperature(integer + decimal / 100.0)


def decode_pressure(data: Buffer) -> Pressure:
    integer, decimal = _unpack("pressure", _PRESSURE, data)
    return Pressure(integer + decimal / 100.0)


def decode_humidity(data: Buffer) -> Humidity:
    (percent,) = _unpack("humidity", _HUMIDITY, data)
    return Humidity(percent)


def decode_gas(data: Buffer) -> Gas:
    eco2, tvoc = _unpack("gas", _GAS, data)
    return Gas(eco2=eco2, tvoc=tvoc)


def decode_color(data: Buffer) -> Color:
    red, green, blue, clear = _unpack("color", _COLOR, data)
    return Color(red=red, green=green, blue=blue, clear=clear)


def decode_button(data: Buffer) -> Button:
    # Any state other than 1 (pressed) reads as released.
    (state,) = _unpack("button", _BUTTON, data)
    return Button(state == 1)


__all__ = [
    "Button",
    "Color",
    "Gas",
    "Humidity",
    "MalformedPayload",
    "Pressure",
    "Reading",
    "Temperature",
    "decode_button",
    "decode_color",
    "decode_gas",
    "decode_humidity",
    "decode_pressure",
    "decode_temperature",
]
