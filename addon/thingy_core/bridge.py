"""Bridge orchestration: wire a ThingySession to an MQTT publisher.

Setup enables each configured family independently and publishes its
discovery configs; the dispatch loop then runs until the device disconnects.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal

from .config import BridgeConfig
from .dispatcher import ReadingDispatcher
from .families import FAMILIES, SensorFamily
from .logging_setup import logger
from .ports import Publisher
from .publisher import MqttPublisher, PublishFailed, connect_publisher
from .session import CharacteristicNotFound, SubscribeFailed, ThingySession
from .topics import discovery_messages

DISCONNECT_GRACE = 5.0


class ThingyBridge:
    def __init__(
        self, config: BridgeConfig, session: ThingySession, publisher: Publisher
    ) -> None:
        self.config = config
        self.session = session
        self.publisher = publisher
        self.active: list[SensorFamily] = []
        self._run_task: asyncio.Task | None = None
        self._forced = False

    async def setup(self) -> list[SensorFamily]:
        """Enable configured families; a failing family is skipped, not fatal."""
        self.active = []
        for family in self.config.enabled_families:
            try:
                await self.session.enable(family)
            except (CharacteristicNotFound, SubscribeFailed) as exc:
                logger.warning(
                    {
                        "event": "family_enable_skipped",
                        "family": str(family),
                        "error": str(exc),
                    }
                )
                continue
            self.active.append(family)
            self.publish_discovery(family)
        logger.info(
            {
                "event": "bridge_setup_complete",
                "address": self.session.address,
                "families": [str(f) for f in self.active],
            }
        )
        return self.active

    def publish_discovery(self, family: SensorFamily) -> None:
        for topic, payload in discovery_messages(
            self.session.address,
            self.config.device_name,
            FAMILIES[family],
            self.config.discovery_prefix,
        ):
            try:
                self.publisher.publish(
                    topic, payload, retain=self.config.discovery_retain
                )
            except PublishFailed as exc:
                logger.warning(
                    {"event": "discovery_publish_failed", "topic": topic, "error": str(exc)}
                )

    def dispatcher(self) -> ReadingDispatcher:
        # Every queue closes on disconnect, so watching all of them is safe.
        return ReadingDispatcher(
            self.publisher,
            self.config.device_name,
            self.session.queues,
            prefix=self.config.discovery_prefix,
        )

    async def run(self) -> int:
        await self.setup()
        if not self.active:
            logger.error({"event": "bridge_no_families"})
            await self.shutdown()
            return 0
        dispatcher = self.dispatcher()
        self._run_task = asyncio.ensure_future(dispatcher.run())
        try:
            return await self._run_task
        except asyncio.CancelledError:
            if not (self._forced and self._run_task.cancelled()):
                raise
            logger.warning(
                {"event": "bridge_forced_stop", "published": dispatcher.published}
            )
            return dispatcher.published

    async def shutdown(self) -> bool:
        """Request disconnect; False if the transport raised."""
        try:
            await self.session.disconnect()
        except Exception as exc:  # noqa: BLE001
            logger.warning({"event": "bridge_disconnect_error", "error": repr(exc)})
            return False
        return True

    async def stop(self, grace: float = DISCONNECT_GRACE) -> None:
        """Disconnect, and cancel the dispatch loop if the link never confirms.

        Queues only close from the transport's disconnect callback, so a
        failed or unconfirmed disconnect would otherwise leave run() waiting.
        """
        if await self.shutdown():
            try:
                await asyncio.wait_for(self.session.wait_disconnected(), grace)
                return
            except asyncio.TimeoutError:
                logger.warning({"event": "bridge_disconnect_unconfirmed", "grace": grace})
        if self._run_task is not None and not self._run_task.done():
            self._forced = True
            self._run_task.cancel()


async def run_bridge(config: BridgeConfig) -> int:
    """Connect MQTT and BLE, run until disconnect; returns publish count.

    Connection errors propagate to the caller and are fatal.
    """
    publisher: MqttPublisher = await asyncio.to_thread(connect_publisher, config)
    try:
        session = await ThingySession.connect(
            config.device_name,
            scan_timeout=config.scan_timeout,
            adapter=config.ble_adapter,
            capacity=config.queue_capacity,
            overflow=config.queue_overflow,
        )
        bridge = ThingyBridge(config, session, publisher)
        loop = asyncio.get_running_loop()
        stopping: set[asyncio.Task] = set()

        def _request_stop(signame: str) -> None:
            logger.info({"event": "signal_received", "signal": signame})
            task = loop.create_task(bridge.stop())
            stopping.add(task)
            task.add_done_callback(stopping.discard)

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _request_stop, sig.name)
        try:
            return await bridge.run()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.remove_signal_handler(sig)
            if session.is_connected:
                await bridge.shutdown()
    finally:
        publisher.close(config.mqtt_quiesce_ms)


__all__ = ["ThingyBridge", "run_bridge"]
