"""Sensor-family descriptor table.

Each family ties a (service, characteristic) pair to its decoder and to the
Home Assistant sensor entities derived from its readings. Session, bridge
and dispatcher iterate FAMILIES instead of naming families one by one.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from . import codec, uuids


class SensorFamily(str, Enum):
    TEMPERATURE = "temperature"
    PRESSURE = "pressure"
    HUMIDITY = "humidity"
    GAS = "gas"
    COLOR = "color"
    BUTTON = "button"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class EntitySpec:
    """One published sensor: its state key, HA metadata and value extractor."""

    sensor_type: str
    device_class: str | None
    unit: str | None
    extract: Callable[[Any], Any]


@dataclass(frozen=True)
class FamilyDescriptor:
    family: SensorFamily
    service_uuid: str
    characteristic_uuid: str
    decode: Callable[[codec.Buffer], codec.Reading]
    entities: tuple[EntitySpec, ...]


FAMILIES: dict[SensorFamily, FamilyDescriptor] = {
    SensorFamily.TEMPERATURE: FamilyDescriptor(
        SensorFamily.TEMPERATURE,
        uuids.TES_UUID,
        uuids.TES_TEMP_UUID,
        codec.decode_temperature,
        (EntitySpec("temperature", "temperature", "°C", lambda r: r.celsius),),
    ),
    SensorFamily.PRESSURE: FamilyDescriptor(
        SensorFamily.PRESSURE,
        uuids.TES_UUID,
        uuids.TES_PRESS_UUID,
        codec.decode_pressure,
        (EntitySpec("pressure", "pressure", "hPa", lambda r: r.hpa),),
    ),
    SensorFamily.HUMIDITY: FamilyDescriptor(
        SensorFamily.HUMIDITY,
        uuids.TES_UUID,
        uuids.TES_HUMID_UUID,
        codec.decode_humidity,
        (EntitySpec("humidity", "humidity", "%", lambda r: r.percent),),
    ),
    SensorFamily.GAS: FamilyDescriptor(
        SensorFamily.GAS,
        uuids.TES_UUID,
        uuids.TES_GAS_UUID,
        codec.decode_gas,
        (
            EntitySpec("eco2", "carbon_dioxide", "ppm", lambda r: r.eco2),
            EntitySpec("tvoc", "volatile_organic_compounds", "ppb", lambda r: r.tvoc),
        ),
    ),
    SensorFamily.COLOR: FamilyDescriptor(
        SensorFamily.COLOR,
        uuids.TES_UUID,
        uuids.TES_COLOR_UUID,
        codec.decode_color,
        (
            EntitySpec("red", None, None, lambda r: r.red),
            EntitySpec("green", None, None, lambda r: r.green),
            EntitySpec("blue", None, None, lambda r: r.blue),
            EntitySpec("clear", None, None, lambda r: r.clear),
        ),
    ),
    SensorFamily.BUTTON: FamilyDescriptor(
        SensorFamily.BUTTON,
        uuids.UIS_UUID,
        uuids.UIS_BTN_UUID,
        codec.decode_button,
        (EntitySpec("button", None, None, lambda r: r.pressed),),
    ),
}


def resolve_family(name: str | SensorFamily) -> SensorFamily:
    """Map a family name (any case) to its SensorFamily; ValueError if unknown."""
    if isinstance(name, SensorFamily):
        return name
    try:
        return SensorFamily(str(name).strip().lower())
    except ValueError:
        known = ", ".join(f.value for f in SensorFamily)
        raise ValueError(f"unknown sensor family {name!r} (known: {known})") from None


__all__ = [
    "FAMILIES",
    "EntitySpec",
    "FamilyDescriptor",
    "SensorFamily",
    "resolve_family",
]
