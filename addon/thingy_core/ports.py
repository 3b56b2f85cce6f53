"""Protocol definitions for the external ports used by the bridge.

These small Protocols document the minimal surface the BLE transport
(a bleak client) and the MQTT publisher must provide. They are used for
type checking and let tests plug in fakes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import Any, Protocol, runtime_checkable

NotifyCallback = Callable[[Any, bytearray], Awaitable[None] | None]


@runtime_checkable
class GattCharacteristic(Protocol):
    uuid: str


@runtime_checkable
class GattService(Protocol):
    uuid: str
    characteristics: list[GattCharacteristic]


@runtime_checkable
class GattClient(Protocol):
    """Connected BLE client surface (matches bleak.BleakClient)."""

    @property
    def address(self) -> str:
        """Transport address of the connected peripheral."""

    @property
    def is_connected(self) -> bool:
        """Whether the link is currently up."""

    @property
    def services(self) -> Iterable[GattService]:
        """Discovered GATT profile: services, each with characteristics."""

    async def start_notify(self, char_specifier: Any, callback: NotifyCallback) -> None:
        """Subscribe to notifications/indications for a characteristic."""

    async def stop_notify(self, char_specifier: Any) -> None:
        """Unsubscribe from a characteristic."""

    async def disconnect(self) -> Any:
        """Request link teardown."""


@runtime_checkable
class Publisher(Protocol):
    """Accepts (topic, payload) pairs; payload is a JSON-serialisable mapping."""

    def publish(self, topic: str, payload: Any, *, retain: bool = False) -> None:
        """Publish one message; raises PublishFailed on transport errors."""


__all__ = [
    "GattCharacteristic",
    "GattClient",
    "GattService",
    "NotifyCallback",
    "Publisher",
]
