"""
MQTT publisher for the bridge.

Wraps a paho-mqtt client behind the small Publisher port: payloads are
JSON-encoded, published with qos 0 by default and never retried, so delivery
is at-most-once.
"""

from __future__ import annotations

import threading
from typing import Any
from urllib.parse import urlsplit

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

from .logging_setup import mqtt_logger as logger
from .topics import encode_payload

_SCHEMES = {
    "tcp": (1883, False),
    "mqtt": (1883, False),
    "ssl": (8883, True),
    "tls": (8883, True),
    "mqtts": (8883, True),
}


class PublishFailed(Exception):
    """Raised when the MQTT client refuses or fails to queue a publish."""


class PublisherConnectFailed(Exception):
    """Raised when the broker connection cannot be established."""


def parse_broker_uri(uri: str) -> tuple[str, int, bool]:
    """Split ``tcp://host:port`` into (host, port, tls). Bare hosts are tcp."""
    text = uri.strip()
    if "://" not in text:
        text = f"tcp://{text}"
    parts = urlsplit(text)
    scheme = parts.scheme.lower()
    if scheme not in _SCHEMES:
        raise ValueError(f"unsupported MQTT scheme {scheme!r} in {uri!r}")
    if not parts.hostname:
        raise ValueError(f"MQTT broker URI has no host: {uri!r}")
    default_port, tls = _SCHEMES[scheme]
    return parts.hostname, parts.port or default_port, tls


class MqttPublisher:
    """Single-writer publisher used by the bridge and the dispatch loop."""

    def __init__(self, client: Any, qos: int = 0) -> None:
        self.client = client
        self.qos = qos
        self._last_info: Any = None

    def publish(self, topic: str, payload: Any, *, retain: bool = False) -> None:
        data = encode_payload(payload)
        try:
            info = self.client.publish(topic, data, qos=self.qos, retain=retain)
        except (OSError, ValueError) as exc:
            raise PublishFailed(f"publish to {topic} failed: {exc}") from exc
        rc = getattr(info, "rc", mqtt.MQTT_ERR_SUCCESS)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishFailed(
                f"publish to {topic} failed: {mqtt.error_string(rc)} (rc={rc})"
            )
        self._last_info = info
        logger.debug(
            {"event": "mqtt_published", "topic": topic, "bytes": len(data), "retain": retain}
        )

    def close(self, quiesce_ms: int = 250) -> None:
        """Give the last publish up to ``quiesce_ms`` to flush, then disconnect."""
        info = self._last_info
        if info is not None and hasattr(info, "wait_for_publish"):
            try:
                info.wait_for_publish(timeout=quiesce_ms / 1000.0)
            except (RuntimeError, ValueError) as exc:
                logger.debug({"event": "mqtt_quiesce_skipped", "error": str(exc)})
        try:
            self.client.disconnect()
        finally:
            self.client.loop_stop()
        logger.info({"event": "mqtt_closed"})


def build_client(
    client_id: str,
    username: str | None = None,
    password: str | None = None,
    tls: bool = False,
) -> mqtt.Client:
    client = mqtt.Client(
        callback_api_version=CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
        clean_session=True,
    )
    if username is not None:
        client.username_pw_set(username=username, password=(password or ""))
    if tls:
        client.tls_set()
    return client


def connect_publisher(config: Any, client_factory=build_client) -> MqttPublisher:
    """Connect to ``config.mqtt_broker`` and wait for the CONNACK.

    Raises PublisherConnectFailed on socket errors, a refused CONNACK or
    a CONNACK that does not arrive within ``config.mqtt_connect_timeout``.
    """
    try:
        host, port, tls = parse_broker_uri(config.mqtt_broker)
    except ValueError as exc:
        raise PublisherConnectFailed(str(exc)) from exc
    client = client_factory(
        config.mqtt_client_id, config.mqtt_username, config.mqtt_password, tls
    )
    connected = threading.Event()
    outcome: dict[str, Any] = {}

    def _on_connect(_client, _userdata, _flags, reason_code, _properties=None):
        outcome["reason"] = reason_code
        connected.set()
        if getattr(reason_code, "is_failure", False):
            logger.error({"event": "mqtt_connect_refused", "reason": str(reason_code)})
        else:
            logger.info({"event": "mqtt_connected", "host": host, "port": port})

    def _on_disconnect(_client, _userdata, _flags, reason_code, _properties=None):
        logger.warning({"event": "mqtt_disconnected", "reason": str(reason_code)})

    client.on_connect = _on_connect
    client.on_disconnect = _on_disconnect

    logger.info(
        {
            "event": "mqtt_connect_attempt",
            "host": host,
            "port": port,
            "tls": tls,
            "client_id": config.mqtt_client_id,
            "user": bool(config.mqtt_username),
        }
    )
    try:
        client.connect(host, port, keepalive=60)
    except (OSError, ValueError) as exc:
        raise PublisherConnectFailed(f"connect to {host}:{port} failed: {exc}") from exc
    client.loop_start()
    if not connected.wait(timeout=config.mqtt_connect_timeout):
        client.loop_stop()
        raise PublisherConnectFailed(
            f"no CONNACK from {host}:{port} within {config.mqtt_connect_timeout}s"
        )
    reason = outcome.get("reason")
    if getattr(reason, "is_failure", False):
        client.loop_stop()
        raise PublisherConnectFailed(f"broker refused connection: {reason}")
    return MqttPublisher(client, qos=config.mqtt_qos)


__all__ = [
    "MqttPublisher",
    "PublishFailed",
    "PublisherConnectFailed",
    "build_client",
    "connect_publisher",
    "parse_broker_uri",
]
