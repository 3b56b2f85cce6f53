from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .families import FAMILIES, SensorFamily

logger = logging.getLogger(__name__)

OVERFLOW_POLICIES = ("block", "drop_oldest", "drop_newest")

DEFAULTS: dict[str, Any] = {
    "DEVICE_NAME": "Office",
    "MQTT_BROKER": "tcp://localhost:1883",
    "MQTT_CLIENT_ID": "thingy-bridge",
    "MQTT_USERNAME": None,
    "MQTT_PASSWORD": None,
    "MQTT_QOS": 0,
    "MQTT_CONNECT_TIMEOUT": 10,
    "MQTT_QUIESCE_MS": 250,
    "DISCOVERY_PREFIX": "homeassistant",
    "DISCOVERY_RETAIN": False,
    "SCAN_TIMEOUT": 60,
    "BLE_ADAPTER": None,
    "QUEUE_CAPACITY": 10,
    "QUEUE_OVERFLOW": "block",
    "ENABLE_TEMPERATURE": True,
    "ENABLE_PRESSURE": True,
    "ENABLE_HUMIDITY": True,
    "ENABLE_GAS": True,
    "ENABLE_COLOR": False,
    "ENABLE_BUTTON": False,
    "LOG_LEVEL": "INFO",
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}

_CACHE: dict[str, Any] = {}


def _candidate_paths() -> list[Path]:
    """Ordered YAML locations: explicit CONFIG_PATH, HA add-on, then local."""
    paths: list[Path] = []
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        paths.append(Path(env_path))
    paths.extend(
        [
            Path("/data/config.yaml"),
            Path("/config/config.yaml"),
            Path.cwd() / "config.yaml",
        ]
    )
    return paths


def _load_options_json(
    path: Path = Path("/data/options.json"),
) -> tuple[dict[str, Any], Path | None]:
    """Load Home Assistant add-on options (JSON). Returns (data, source_path)."""
    if not path.exists():
        logger.debug("[CONFIG] options.json not found: %s", path)
        return {}, None
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        logger.warning("[CONFIG] Failed to parse options.json %s: %s", path, exc)
        return {}, None
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("[CONFIG] Failed to read options.json %s: %s", path, exc)
        return {}, None
    if not isinstance(data, dict):
        logger.warning("[CONFIG] options.json root not a mapping: %s", path)
        return {}, None
    logger.info("[CONFIG] Loaded options from: %s", path)
    return data, path


def _load_yaml_cfg(
    paths: list[Path] | None = None,
) -> tuple[dict[str, Any], Path | None]:
    """Load YAML config from the first valid candidate path."""
    for pth in paths or _candidate_paths():
        if not pth.exists():
            logger.debug("[CONFIG] Path not found: %s", pth)
            continue
        try:
            with pth.open("r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            logger.warning("[CONFIG] Failed to parse YAML %s: %s", pth, exc)
            continue
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("[CONFIG] Failed to read YAML %s: %s", pth, exc)
            continue
        if not isinstance(data, dict):
            logger.warning("[CONFIG] YAML root not a mapping: %s", pth)
            continue
        logger.info("[CONFIG] Loaded YAML config from: %s", pth)
        return data, pth
    return {}, None


def _env_overrides() -> dict[str, Any]:
    return {k: os.environ[k] for k in DEFAULTS if k in os.environ}


def merge_sources(
    yaml_paths: list[Path] | None = None,
    options_path: Path = Path("/data/options.json"),
) -> tuple[dict[str, Any], Path | None]:
    """Defaults < YAML < options.json < environment. Keys are upper-cased."""
    yml, yml_src = _load_yaml_cfg(yaml_paths)
    opts, opts_src = _load_options_json(options_path)
    merged = dict(DEFAULTS)
    for layer in (yml, opts, _env_overrides()):
        merged.update({str(k).upper(): v for k, v in layer.items()})
    return merged, opts_src or yml_src


def as_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in _TRUTHY:
        return True
    if text in _FALSY:
        return False
    logger.warning("[CONFIG] Unrecognised boolean %r; using %s", value, default)
    return default


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class BridgeConfig:
    device_name: str = DEFAULTS["DEVICE_NAME"]
    mqtt_broker: str = DEFAULTS["MQTT_BROKER"]
    mqtt_client_id: str = DEFAULTS["MQTT_CLIENT_ID"]
    mqtt_username: str | None = None
    mqtt_password: str | None = None
    mqtt_qos: int = 0
    mqtt_connect_timeout: float = 10.0
    mqtt_quiesce_ms: int = 250
    discovery_prefix: str = "homeassistant"
    discovery_retain: bool = False
    scan_timeout: float = 60.0
    ble_adapter: str | None = None
    queue_capacity: int = 10
    queue_overflow: str = "block"
    families: dict[SensorFamily, bool] = field(
        default_factory=lambda: {
            f: bool(DEFAULTS[f"ENABLE_{f.value.upper()}"]) for f in SensorFamily
        }
    )
    log_level: str = "INFO"

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> BridgeConfig:
        cfg = dict(DEFAULTS)
        cfg.update({str(k).upper(): v for k, v in data.items()})
        overflow = str(cfg["QUEUE_OVERFLOW"]).strip().lower()
        if overflow not in OVERFLOW_POLICIES:
            raise ValueError(
                f"QUEUE_OVERFLOW must be one of {', '.join(OVERFLOW_POLICIES)}, got {overflow!r}"
            )
        capacity = int(cfg["QUEUE_CAPACITY"])
        if capacity < 1:
            raise ValueError(f"QUEUE_CAPACITY must be positive, got {capacity}")
        families = {
            f: as_bool(cfg[f"ENABLE_{f.value.upper()}"], DEFAULTS[f"ENABLE_{f.value.upper()}"])
            for f in SensorFamily
        }
        return cls(
            device_name=str(cfg["DEVICE_NAME"]),
            mqtt_broker=str(cfg["MQTT_BROKER"]),
            mqtt_client_id=str(cfg["MQTT_CLIENT_ID"]),
            mqtt_username=_opt_str(cfg["MQTT_USERNAME"]),
            mqtt_password=_opt_str(cfg["MQTT_PASSWORD"]),
            mqtt_qos=int(cfg["MQTT_QOS"]),
            mqtt_connect_timeout=float(cfg["MQTT_CONNECT_TIMEOUT"]),
            mqtt_quiesce_ms=int(cfg["MQTT_QUIESCE_MS"]),
            discovery_prefix=str(cfg["DISCOVERY_PREFIX"]).strip("/"),
            discovery_retain=as_bool(cfg["DISCOVERY_RETAIN"]),
            scan_timeout=float(cfg["SCAN_TIMEOUT"]),
            ble_adapter=_opt_str(cfg["BLE_ADAPTER"]),
            queue_capacity=capacity,
            queue_overflow=overflow,
            families=families,
            log_level=str(cfg["LOG_LEVEL"]).upper(),
        )

    @property
    def enabled_families(self) -> list[SensorFamily]:
        """Enabled families in descriptor-table order."""
        return [f for f in FAMILIES if self.families.get(f)]

    def with_families(
        self,
        enable: list[SensorFamily] | None = None,
        disable: list[SensorFamily] | None = None,
    ) -> BridgeConfig:
        families = dict(self.families)
        for f in enable or ():
            families[f] = True
        for f in disable or ():
            families[f] = False
        return replace(self, families=families)


def load_config(
    path: Path | None = None, force: bool = False
) -> tuple[BridgeConfig, Path | None]:
    """Produce the effective configuration, cached after the first load.

    ``path`` pins the YAML file instead of searching the candidate list;
    a pinned file that does not exist raises ValueError.
    """
    key = str(path) if path else "<auto>"
    if not force and key in _CACHE:
        return _CACHE[key]
    if path is not None and not Path(path).is_file():
        raise ValueError(f"config file not found: {path}")
    merged, source = merge_sources([path] if path else None)
    cfg = BridgeConfig.from_mapping(merged)
    logger.debug("[CONFIG] Active source: %s", source)
    _CACHE[key] = (cfg, source)
    return cfg, source


__all__ = [
    "DEFAULTS",
    "OVERFLOW_POLICIES",
    "BridgeConfig",
    "as_bool",
    "load_config",
    "merge_sources",
]
