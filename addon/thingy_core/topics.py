"""Home Assistant MQTT discovery/state topic and payload builders.

All sensors of one device share a single state topic and each state message
carries only its own key, so Home Assistant sees partial updates and keeps
the last value per key through the ``val_tpl`` template.
"""

from __future__ import annotations

import json
from typing import Any

from .families import FamilyDescriptor

DISCOVERY_PREFIX = "homeassistant"
MANUFACTURER = "Nordic Semiconductor"
MODEL = "Thingy:52"


def discovery_topic(
    device_name: str, sensor_type: str, prefix: str = DISCOVERY_PREFIX
) -> str:
    return f"{prefix}/sensor/{device_name}/{sensor_type}/config"


def state_topic(device_name: str, prefix: str = DISCOVERY_PREFIX) -> str:
    return f"{prefix}/sensor/{device_name}/state"


def device_block(mac: str, device_name: str) -> dict[str, Any]:
    return {
        "identifiers": [mac],
        "name": device_name,
        "manufacturer": MANUFACTURER,
        "model": MODEL,
    }


def discovery_payload(
    mac: str,
    sensor_type: str,
    device_class: str | None,
    device_name: str,
    unit: str | None,
    prefix: str = DISCOVERY_PREFIX,
) -> dict[str, Any]:
    """Sensor discovery config; unit/device class are omitted when None."""
    payload: dict[str, Any] = {
        "name": f"{device_name} {sensor_type}",
        "stat_t": state_topic(device_name, prefix),
        "val_tpl": f"{{{{ value_json.{sensor_type} }}}}",
    }
    if unit is not None:
        payload["unit_of_meas"] = unit
    if device_class is not None:
        payload["dev_cla"] = device_class
    payload["uniq_id"] = f"{mac}_{sensor_type}"
    payload["device"] = device_block(mac, device_name)
    return payload


def state_payload(sensor_type: str, value: Any) -> dict[str, Any]:
    return {sensor_type: value}


def discovery_messages(
    mac: str,
    device_name: str,
    descriptor: FamilyDescriptor,
    prefix: str = DISCOVERY_PREFIX,
) -> list[tuple[str, dict[str, Any]]]:
    """One (topic, payload) discovery pair per entity of the family."""
    return [
        (
            discovery_topic(device_name, entity.sensor_type, prefix),
            discovery_payload(
                mac,
                entity.sensor_type,
                entity.device_class,
                device_name,
                entity.unit,
                prefix,
            ),
        )
        for entity in descriptor.entities
    ]


def state_messages(
    device_name: str,
    descriptor: FamilyDescriptor,
    reading: Any,
    prefix: str = DISCOVERY_PREFIX,
) -> list[tuple[str, dict[str, Any]]]:
    """One (topic, payload) state pair per entity, in entity order."""
    topic = state_topic(device_name, prefix)
    return [
        (topic, state_payload(entity.sensor_type, entity.extract(reading)))
        for entity in descriptor.entities
    ]


def encode_payload(payload: Any) -> bytes:
    """Compact UTF-8 JSON; strings and bytes pass through unchanged."""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


__all__ = [
    "DISCOVERY_PREFIX",
    "MANUFACTURER",
    "MODEL",
    "device_block",
    "discovery_messages",
    "discovery_payload",
    "discovery_topic",
    "encode_payload",
    "state_messages",
    "state_payload",
    "state_topic",
]
