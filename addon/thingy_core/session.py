"""
BLE session for a Nordic Thingy:52 using bleak.

Owns the connected client and its discovered GATT profile, resolves sensor
families to characteristics, and manages notification subscriptions. Each
family has one bounded ReadingQueue fed by its notification callback; all
queues are closed exactly once when the transport reports disconnection.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.exc import BleakError

from .codec import MalformedPayload
from .families import FAMILIES, FamilyDescriptor, SensorFamily, resolve_family
from .logging_setup import ble_logger as logger
from .ports import GattClient
from .reading_queue import DEFAULT_CAPACITY, QueueClosed, QueueFull, ReadingQueue
from .uuids import normalize_uuid


class ThingyError(Exception):
    """Base exception for Thingy bridge operations."""


class DeviceNotFound(ThingyError):
    """No advertising peripheral matched the name filter within the scan window."""


class ConnectFailed(ThingyError):
    """Raised when the BLE connection cannot be established."""


class DiscoveryFailed(ThingyError):
    """Raised when GATT profile discovery fails or yields no services."""


class CharacteristicNotFound(ThingyError):
    """A (service, characteristic) pair is absent from the discovered profile."""

    def __init__(self, service_uuid: str, characteristic_uuid: str) -> None:
        super().__init__(
            f"characteristic {characteristic_uuid} not found in service {service_uuid}"
        )
        self.service_uuid = service_uuid
        self.characteristic_uuid = characteristic_uuid


class SubscribeFailed(ThingyError):
    """Raised when the transport rejects a notification subscription."""


class UnsubscribeFailed(ThingyError):
    """Raised when the transport rejects a notification unsubscription."""


def normalize_address(raw: str) -> str:
    """Uppercase hex with separators stripped: 'aa:bb:..' -> 'AABB..'."""
    return str(raw).replace(":", "").replace("-", "").strip().upper()


def name_matches(name_filter: str, advertised: str | None) -> bool:
    """Case-insensitive substring match against an advertised local name."""
    return bool(advertised) and name_filter.upper() in advertised.upper()


@dataclass(frozen=True)
class CharacteristicBinding:
    descriptor: FamilyDescriptor
    characteristic: Any
    queue: ReadingQueue

    @property
    def family(self) -> SensorFamily:
        return self.descriptor.family


class ThingySession:
    """
    One connected Thingy:52.

    Construct through ``ThingySession.connect()`` for a real device; tests
    build it directly with a fake client and call ``attach()``.
    """

    def __init__(
        self,
        address: str,
        client: GattClient | None = None,
        *,
        capacity: int = DEFAULT_CAPACITY,
        overflow: str = "block",
    ) -> None:
        self._address = normalize_address(address)
        self._client: GattClient | None = None
        self._bindings: dict[SensorFamily, CharacteristicBinding] = {}
        self._enabled: set[SensorFamily] = set()
        self._closed = False
        self.disconnected = asyncio.Event()
        # Readings waiting behind a full ``block`` queue, at most ``backlog`` per family.
        self.backlog = capacity
        self._parked: dict[SensorFamily, set[asyncio.Task]] = {f: set() for f in FAMILIES}
        self.queues: dict[SensorFamily, ReadingQueue] = {
            family: ReadingQueue(family, capacity=capacity, overflow=overflow)
            for family in FAMILIES
        }
        if client is not None:
            self.attach(client)

    @classmethod
    async def connect(
        cls,
        name_filter: str,
        *,
        scan_timeout: float = 60.0,
        connect_timeout: float = 10.0,
        adapter: str | None = None,
        capacity: int = DEFAULT_CAPACITY,
        overflow: str = "block",
    ) -> ThingySession:
        """Scan for ``name_filter``, connect, discover the profile.

        Raises:
            DeviceNotFound: nothing matched within ``scan_timeout`` seconds.
            ConnectFailed: the link could not be established.
            DiscoveryFailed: the link came up without a usable GATT profile.
        """
        scan_kwargs: dict[str, Any] = {"timeout": scan_timeout}
        if adapter:
            scan_kwargs["bluez"] = {"adapter": adapter}
        logger.info(
            {
                "event": "ble_scan_start",
                "name_filter": name_filter,
                "timeout": scan_timeout,
                "adapter": adapter,
            }
        )
        try:
            device = await BleakScanner.find_device_by_filter(
                lambda d, adv: name_matches(name_filter, adv.local_name or d.name),
                **scan_kwargs,
            )
        except BleakError as exc:
            raise DeviceNotFound(f"BLE scan failed: {exc}") from exc
        if device is None:
            raise DeviceNotFound(
                f"no peripheral advertising {name_filter!r} within {scan_timeout}s"
            )
        logger.info(
            {"event": "ble_scan_match", "name": device.name, "address": device.address}
        )

        session = cls(device.address, capacity=capacity, overflow=overflow)
        client_kwargs: dict[str, Any] = {"timeout": connect_timeout}
        if adapter:
            client_kwargs["bluez"] = {"adapter": adapter}
        client = BleakClient(
            device,
            disconnected_callback=session._on_disconnected,
            **client_kwargs,
        )
        try:
            await client.connect()
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            raise ConnectFailed(f"connect to {device.address} failed: {exc}") from exc

        # bleak discovers the full profile as part of connect()
        try:
            services = client.services
        except BleakError as exc:
            await client.disconnect()
            raise DiscoveryFailed(f"profile discovery failed: {exc}") from exc
        if services is None or not list(services):
            await client.disconnect()
            raise DiscoveryFailed(f"no GATT services discovered on {device.address}")

        session.attach(client)
        return session

    def attach(self, client: GattClient) -> None:
        self._client = client
        logger.info(
            {
                "event": "ble_session_connected",
                "address": self._address,
                "services": [str(getattr(s, "uuid", s)) for s in client.services],
            }
        )

    # ------------------------------------------------------------------ state

    @property
    def address(self) -> str:
        return self._address

    @property
    def client(self) -> GattClient:
        if self._client is None:
            raise ThingyError("session has no attached client")
        return self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None and not self.disconnected.is_set()

    @property
    def enabled(self) -> frozenset[SensorFamily]:
        return frozenset(self._enabled)

    async def wait_disconnected(self) -> None:
        await self.disconnected.wait()

    # ------------------------------------------------------------ profile lookup

    def find_characteristic(self, service_uuid: str, characteristic_uuid: str) -> Any:
        """Linear search of the discovered services, then their characteristics."""
        svc_id = normalize_uuid(service_uuid)
        chr_id = normalize_uuid(characteristic_uuid)
        for service in self.client.services:
            if normalize_uuid(service.uuid) != svc_id:
                continue
            for char in service.characteristics:
                if normalize_uuid(char.uuid) == chr_id:
                    return char
        raise CharacteristicNotFound(service_uuid, characteristic_uuid)

    def binding(self, family: SensorFamily | str) -> CharacteristicBinding:
        """Return the family's binding, building it on first use."""
        fam = resolve_family(family)
        existing = self._bindings.get(fam)
        if existing is not None:
            return existing
        descriptor = FAMILIES[fam]
        char = self.find_characteristic(
            descriptor.service_uuid, descriptor.characteristic_uuid
        )
        created = CharacteristicBinding(descriptor, char, self.queues[fam])
        self._bindings[fam] = created
        return created

    # ---------------------------------------------------------- subscriptions

    async def enable(self, family: SensorFamily | str) -> None:
        """Subscribe to the family's characteristic.

        Raises:
            CharacteristicNotFound: the profile lacks the characteristic.
            SubscribeFailed: the transport rejected the subscription.
        """
        bound = self.binding(family)
        try:
            await self.client.start_notify(
                bound.characteristic, self._make_callback(bound)
            )
        except (BleakError, asyncio.TimeoutError, OSError, ValueError) as exc:
            raise SubscribeFailed(f"subscribe {bound.family} failed: {exc}") from exc
        self._enabled.add(bound.family)
        logger.info({"event": "ble_family_enabled", "family": str(bound.family)})

    async def disable(self, family: SensorFamily | str) -> None:
        """Unsubscribe; the family's queue stays open until disconnection.

        Raises:
            CharacteristicNotFound: the profile lacks the characteristic.
            UnsubscribeFailed: the transport rejected the unsubscription.
        """
        bound = self.binding(family)
        try:
            await self.client.stop_notify(bound.characteristic)
        except (BleakError, asyncio.TimeoutError, OSError, ValueError) as exc:
            raise UnsubscribeFailed(f"unsubscribe {bound.family} failed: {exc}") from exc
        self._enabled.discard(bound.family)
        logger.info({"event": "ble_family_disabled", "family": str(bound.family)})

    def _make_callback(self, bound: CharacteristicBinding):
        """Build the synchronous notify handler for one family.

        bleak calls sync handlers inline and only schedules coroutine ones,
        so the handler never suspends. A reading that finds its ``block``
        queue full is parked in a put() task behind the earlier ones; once
        ``backlog`` readings are parked, further readings are dropped and
        counted on the queue.
        """
        decode = bound.descriptor.decode
        queue = bound.queue
        parked = self._parked[bound.family]
        family = str(bound.family)

        def _unpark(task: asyncio.Task) -> None:
            parked.discard(task)
            if not task.cancelled() and isinstance(task.exception(), QueueClosed):
                logger.debug({"event": "ble_notify_after_close", "family": family})

        def _on_notify(_sender: Any, data: bytearray) -> None:
            try:
                reading = decode(data)
            except MalformedPayload as exc:
                logger.warning(
                    {
                        "event": "ble_notify_malformed",
                        "family": family,
                        "payload": bytes(data).hex(),
                        "error": str(exc),
                    }
                )
                return
            if queue.closed:
                logger.debug({"event": "ble_notify_after_close", "family": family})
                return
            if not parked:
                try:
                    queue.put_nowait(reading)
                    return
                except QueueFull:
                    pass
            if len(parked) >= self.backlog:
                queue.record_drop(reading)
                return
            task = asyncio.ensure_future(queue.put(reading))
            parked.add(task)
            task.add_done_callback(_unpark)

        return _on_notify

    def parked(self, family: SensorFamily | str) -> int:
        """Readings of ``family`` waiting for room in its queue."""
        return len(self._parked[resolve_family(family)])

    # -------------------------------------------------------------- lifecycle

    async def disconnect(self) -> None:
        """Request teardown; queues close when the transport confirms it."""
        if self._client is None:
            return
        logger.info({"event": "ble_disconnect_requested", "address": self._address})
        await self._client.disconnect()

    def _on_disconnected(self, _client: Any = None) -> None:
        """Transport disconnect hook; closes every queue exactly once."""
        if self._closed:
            return
        self._closed = True
        for queue in self.queues.values():
            queue.close()
        self._enabled.clear()
        self.disconnected.set()
        logger.warning({"event": "ble_disconnected", "address": self._address})


__all__ = [
    "CharacteristicBinding",
    "CharacteristicNotFound",
    "ConnectFailed",
    "DeviceNotFound",
    "DiscoveryFailed",
    "SubscribeFailed",
    "ThingyError",
    "ThingySession",
    "UnsubscribeFailed",
    "name_matches",
    "normalize_address",
]
