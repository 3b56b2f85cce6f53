"""Thingy:52 BLE environmental sensor to MQTT / Home Assistant bridge."""

from __future__ import annotations

from .codec import (
    Button,
    Color,
    Gas,
    Humidity,
    MalformedPayload,
    Pressure,
    Reading,
    Temperature,
)
from .families import FAMILIES, SensorFamily
from .reading_queue import QueueClosed, ReadingQueue
from .session import (
    CharacteristicNotFound,
    ConnectFailed,
    DeviceNotFound,
    DiscoveryFailed,
    SubscribeFailed,
    ThingyError,
    ThingySession,
    UnsubscribeFailed,
)

__all__ = [
    "FAMILIES",
    "Button",
    "CharacteristicNotFound",
    "Color",
    "ConnectFailed",
    "DeviceNotFound",
    "DiscoveryFailed",
    "Gas",
    "Humidity",
    "MalformedPayload",
    "Pressure",
    "QueueClosed",
    "Reading",
    "ReadingQueue",
    "SensorFamily",
    "SubscribeFailed",
    "Temperature",
    "ThingyError",
    "ThingySession",
    "UnsubscribeFailed",
]
