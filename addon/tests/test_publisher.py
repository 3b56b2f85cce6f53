import json
import types

import paho.mqtt.client as mqtt
import pytest

from addon.thingy_core.config import BridgeConfig
from addon.thingy_core.publisher import (
    MqttPublisher,
    PublisherConnectFailed,
    PublishFailed,
    connect_publisher,
    parse_broker_uri,
)
from conftest import FakePahoClient


@pytest.mark.parametrize(
    "uri, expected",
    [
        ("tcp://localhost:1883", ("localhost", 1883, False)),
        ("tcp://broker.lan", ("broker.lan", 1883, False)),
        ("mqtt://10.0.0.2:1884", ("10.0.0.2", 1884, False)),
        ("ssl://broker.lan", ("broker.lan", 8883, True)),
        ("mqtts://broker.lan:9883", ("broker.lan", 9883, True)),
        ("core-mosquitto", ("core-mosquitto", 1883, False)),
        ("core-mosquitto:1885", ("core-mosquitto", 1885, False)),
    ],
)
def test_parse_broker_uri(uri, expected):
    assert parse_broker_uri(uri) == expected


@pytest.mark.parametrize("uri", ["http://broker:80", "tcp://:1883"])
def test_parse_broker_uri_rejects(uri):
    with pytest.raises(ValueError):
        parse_broker_uri(uri)


def test_publish_encodes_json_with_qos_and_retain():
    client = FakePahoClient()
    pub = MqttPublisher(client, qos=1)
    pub.publish("homeassistant/sensor/Office/state", {"humidity": 41})
    pub.publish("homeassistant/sensor/Office/humidity/config", {"a": 1}, retain=True)

    (t1, p1, q1, r1), (_, _, _, r2) = client.published
    assert t1 == "homeassistant/sensor/Office/state"
    assert json.loads(p1) == {"humidity": 41}
    assert (q1, r1, r2) == (1, False, True)


def test_publish_rc_failure_raises():
    pub = MqttPublisher(FakePahoClient(rc=mqtt.MQTT_ERR_NO_CONN))
    with pytest.raises(PublishFailed, match="publish to t failed"):
        pub.publish("t", {"x": 1})


def test_publish_socket_error_raises():
    client = FakePahoClient()

    def _boom(*_a, **_kw):
        raise OSError("broken pipe")

    client.publish = _boom
    with pytest.raises(PublishFailed, match="broken pipe"):
        MqttPublisher(client).publish("t", "x")


def test_close_waits_then_disconnects():
    client = FakePahoClient()
    waits = []
    pub = MqttPublisher(client)
    pub.publish("t", "x")
    client.last_info.wait_for_publish = lambda timeout=None: waits.append(timeout)

    pub.close(500)

    assert waits == [0.5]
    assert client.disconnected and client.loop_stopped


def test_close_without_publishes():
    client = FakePahoClient()
    MqttPublisher(client).close()
    assert client.disconnected and client.loop_stopped


# -------------------------------------------------------------- connect


class _ConnectingClient(FakePahoClient):
    """Fires on_connect from loop_start() like paho's network thread would."""

    def __init__(self, reason=None, connect_error=None, ack=True):
        super().__init__()
        self.reason = reason or types.SimpleNamespace(is_failure=False)
        self.connect_error = connect_error
        self.ack = ack
        self.on_connect = None
        self.on_disconnect = None
        self.connect_args = None
        self.loop_started = False

    def connect(self, host, port, keepalive=60):
        if self.connect_error is not None:
            raise self.connect_error
        self.connect_args = (host, port, keepalive)
        return 0

    def loop_start(self):
        self.loop_started = True
        if self.ack:
            self.on_connect(self, None, {}, self.reason, None)
        return 0


def _factory(client, seen=None):
    def _make(client_id, username, password, tls):
        if seen is not None:
            seen.append((client_id, username, password, tls))
        return client

    return _make


def test_connect_publisher_waits_for_connack():
    client = _ConnectingClient()
    seen = []
    cfg = BridgeConfig(mqtt_broker="mqtts://broker.lan", mqtt_username="ha", mqtt_password="pw", mqtt_qos=1)

    pub = connect_publisher(cfg, client_factory=_factory(client, seen))

    assert isinstance(pub, MqttPublisher)
    assert pub.qos == 1
    assert client.connect_args == ("broker.lan", 8883, 60)
    assert seen == [("thingy-bridge", "ha", "pw", True)]
    assert callable(client.on_disconnect)


def test_connect_publisher_refused():
    client = _ConnectingClient(reason=types.SimpleNamespace(is_failure=True))
    with pytest.raises(PublisherConnectFailed, match="refused"):
        connect_publisher(BridgeConfig(), client_factory=_factory(client))
    assert client.loop_stopped


def test_connect_publisher_socket_error():
    client = _ConnectingClient(connect_error=ConnectionRefusedError("nope"))
    with pytest.raises(PublisherConnectFailed, match="localhost:1883"):
        connect_publisher(BridgeConfig(), client_factory=_factory(client))
    assert not client.loop_started


def test_connect_publisher_times_out_without_connack():
    client = _ConnectingClient(ack=False)
    cfg = BridgeConfig(mqtt_connect_timeout=0.05)
    with pytest.raises(PublisherConnectFailed, match="no CONNACK"):
        connect_publisher(cfg, client_factory=_factory(client))
    assert client.loop_stopped


def test_connect_publisher_bad_uri():
    with pytest.raises(PublisherConnectFailed):
        connect_publisher(
            BridgeConfig(mqtt_broker="ws://x"), client_factory=_factory(_ConnectingClient())
        )
