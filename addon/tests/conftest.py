"""
Pytest configuration for the Thingy bridge tests.

- Ensures the repository root is on sys.path so imports like
  `from addon.thingy_core import ...` resolve consistently.
- Provides in-memory fakes for the bleak client and the paho MQTT client.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import sys
import types
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    """Tests live under addon/tests/; the parent of 'addon' must be importable."""
    repo_root = Path(__file__).resolve().parent.parent.parent
    root_str = str(repo_root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_repo_root_on_syspath()

from addon.thingy_core import uuids  # noqa: E402
from addon.thingy_core.config import DEFAULTS  # noqa: E402
from addon.thingy_core.session import ThingySession  # noqa: E402

MAC = "AA:BB:CC:DD:EE:FF"


class FakeCharacteristic:
    def __init__(self, uuid: str) -> None:
        self.uuid = uuid

    def __repr__(self) -> str:
        return f"<FakeCharacteristic {self.uuid}>"


class FakeService:
    def __init__(self, uuid: str, char_uuids: list[str]) -> None:
        self.uuid = uuid
        self.characteristics = [FakeCharacteristic(c) for c in char_uuids]


def thingy_profile(missing: tuple[str, ...] = ()) -> list[FakeService]:
    """Environment + UI services, minus any characteristic UUIDs in ``missing``."""
    env = [
        uuids.TES_TEMP_UUID,
        uuids.TES_PRESS_UUID,
        uuids.TES_HUMID_UUID,
        uuids.TES_GAS_UUID,
        uuids.TES_COLOR_UUID,
        uuids.TES_CONF_UUID,
    ]
    ui = [uuids.UIS_LED_UUID, uuids.UIS_BTN_UUID, uuids.UIS_PIN_UUID]
    return [
        FakeService(uuids.TCS_UUID, []),
        FakeService(uuids.TES_UUID, [c for c in env if c not in missing]),
        FakeService(uuids.UIS_UUID, [c for c in ui if c not in missing]),
    ]


class FakeGattClient:
    """Stands in for a connected bleak.BleakClient."""

    def __init__(self, services=None, address: str = MAC) -> None:
        self.address = address
        self.services = services if services is not None else thingy_profile()
        self.is_connected = True
        self.callbacks: dict[str, object] = {}
        self.start_calls: list[str] = []
        self.stop_calls: list[str] = []
        self.fail_subscribe: dict[str, Exception] = {}
        self.fail_unsubscribe: dict[str, Exception] = {}
        self.disconnected_callback = None
        self.disconnect_calls = 0
        self.tasks: set[asyncio.Task] = set()

    async def start_notify(self, char, callback) -> None:
        self.start_calls.append(char.uuid)
        if char.uuid in self.fail_subscribe:
            raise self.fail_subscribe[char.uuid]
        self.callbacks[char.uuid] = callback

    async def stop_notify(self, char) -> None:
        self.stop_calls.append(char.uuid)
        if char.uuid in self.fail_unsubscribe:
            raise self.fail_unsubscribe[char.uuid]
        self.callbacks.pop(char.uuid, None)

    async def notify(self, char_uuid: str, data: bytes) -> None:
        """Deliver one notification the way bleak does.

        Plain callbacks run inline; coroutine callbacks are handed to
        create_task and not awaited.
        """
        callback = self.callbacks[char_uuid]
        if inspect.iscoroutinefunction(callback):
            task = asyncio.create_task(callback(None, bytearray(data)))
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)
        else:
            callback(None, bytearray(data))

    async def disconnect(self) -> bool:
        self.disconnect_calls += 1
        if self.is_connected:
            self.is_connected = False
            if self.disconnected_callback is not None:
                self.disconnected_callback(self)
        return True


class FakePublisher:
    """Publisher port fake: records (topic, payload, retain)."""

    def __init__(self, fail_topics: set[str] | None = None) -> None:
        self.published: list[tuple[str, object, bool]] = []
        self.fail_topics = fail_topics or set()

    def publish(self, topic, payload, *, retain=False) -> None:
        from addon.thingy_core.publisher import PublishFailed

        if topic in self.fail_topics:
            raise PublishFailed(f"refused {topic}")
        self.published.append((topic, payload, retain))

    def payloads_for(self, topic: str) -> list[object]:
        return [p for t, p, _ in self.published if t == topic]


class FakePahoClient:
    """Minimal paho.mqtt.client.Client surface used by MqttPublisher."""

    def __init__(self, rc: int = 0) -> None:
        self.rc = rc
        self.published: list[tuple[str, bytes, int, bool]] = []
        self.disconnected = False
        self.loop_stopped = False
        self.last_info = None

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append((topic, payload, qos, retain))
        self.last_info = types.SimpleNamespace(
            rc=self.rc, wait_for_publish=lambda timeout=None: True
        )
        return self.last_info

    def disconnect(self):
        self.disconnected = True
        return 0

    def loop_stop(self):
        self.loop_stopped = True
        return 0


@pytest.fixture
def fake_client() -> FakeGattClient:
    return FakeGattClient()


@pytest.fixture
def make_session():
    """Build a session over a FakeGattClient with the disconnect hook wired."""

    def _make(client: FakeGattClient | None = None, **kwargs) -> ThingySession:
        client = client or FakeGattClient()
        session = ThingySession(client.address, client, **kwargs)
        client.disconnected_callback = session._on_disconnected
        return session

    return _make


@pytest.fixture
def fake_publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def caplog_level(caplog):
    caplog.set_level(logging.DEBUG)
    caplog.set_level(logging.DEBUG, logger="addon.thingy_core")
    return caplog


@pytest.fixture(autouse=True)
def _isolate_config_env(monkeypatch):
    """Config keys in the developer's environment must not leak into tests."""
    for key in list(DEFAULTS) + ["CONFIG_PATH", "THINGY_LOG_LEVEL"]:
        monkeypatch.delenv(key, raising=False)


async def settle(rounds: int = 5) -> None:
    """Let pending tasks run a few scheduler turns."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """setup_logging() mutates the package logger; undo it after each test."""
    pkg = logging.getLogger("addon.thingy_core")
    level, handlers = pkg.level, list(pkg.handlers)
    yield
    pkg.setLevel(level)
    pkg.handlers[:] = handlers
