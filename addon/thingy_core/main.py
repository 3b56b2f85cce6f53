"""Main entrypoint: bridge a Thingy:52 to Home Assistant over MQTT."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

from .bridge import run_bridge
from .config import load_config
from .families import SensorFamily, resolve_family
from .logging_setup import logger, setup_logging
from .publisher import PublisherConnectFailed
from .session import ThingyError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="thingy-bridge",
        description="Publish Thingy:52 sensor notifications to MQTT (Home Assistant discovery)",
    )
    parser.add_argument("--name", help="name of remote peripheral (substring match)")
    parser.add_argument("--mqtt", help="address of the mqtt broker, eg tcp://host:1883")
    parser.add_argument("--config", type=Path, help="YAML config file")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR")
    families = [f.value for f in SensorFamily]
    parser.add_argument(
        "--enable",
        action="append",
        default=[],
        choices=families,
        help="enable a sensor family (repeatable)",
    )
    parser.add_argument(
        "--disable",
        action="append",
        default=[],
        choices=families,
        help="disable a sensor family (repeatable)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config, source = load_config(args.config)
    except ValueError as exc:
        setup_logging(args.log_level)
        logger.error({"event": "config_invalid", "error": str(exc)})
        return 1

    overrides = {}
    if args.name:
        overrides["device_name"] = args.name
    if args.mqtt:
        overrides["mqtt_broker"] = args.mqtt
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    config = replace(config, **overrides).with_families(
        enable=[resolve_family(f) for f in args.enable],
        disable=[resolve_family(f) for f in args.disable],
    )
    setup_logging(config.log_level)
    logger.info(
        {
            "event": "thingy_bridge_start",
            "config_source": str(source) if source else None,
            "device_name": config.device_name,
            "broker": config.mqtt_broker,
            "families": [str(f) for f in config.enabled_families],
        }
    )

    try:
        published = asyncio.run(run_bridge(config))
    except KeyboardInterrupt:
        logger.info({"event": "thingy_bridge_interrupted"})
        return 0
    except (PublisherConnectFailed, ThingyError) as exc:
        logger.error({"event": "thingy_bridge_fatal", "error": str(exc)})
        return 1
    logger.info({"event": "thingy_bridge_exit", "published": published})
    return 0


if __name__ == "__main__":
    sys.exit(main())
