"""Dispatch loop: fan in readings from every family queue and publish them.

One outstanding get() is kept per open queue, so each family is consumed in
FIFO order while families interleave freely. A closed queue retires only its
own family; the loop ends once every watched family has closed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

from .families import FAMILIES, SensorFamily
from .logging_setup import logger
from .ports import Publisher
from .publisher import PublishFailed
from .reading_queue import QueueClosed, ReadingQueue
from .topics import DISCOVERY_PREFIX, state_messages


class ReadingDispatcher:
    def __init__(
        self,
        publisher: Publisher,
        device_name: str,
        queues: Mapping[SensorFamily, ReadingQueue],
        *,
        families: Iterable[SensorFamily] | None = None,
        prefix: str = DISCOVERY_PREFIX,
    ) -> None:
        self.publisher = publisher
        self.device_name = device_name
        self.prefix = prefix
        watched = list(families) if families is not None else list(queues)
        self.queues = {f: queues[f] for f in watched}
        self.published = 0
        self.failed = 0

    def handle(self, family: SensorFamily, reading: Any) -> None:
        """Build and publish the state messages for one reading."""
        descriptor = FAMILIES[family]
        for topic, payload in state_messages(
            self.device_name, descriptor, reading, self.prefix
        ):
            try:
                self.publisher.publish(topic, payload)
            except PublishFailed as exc:
                self.failed += 1
                logger.warning(
                    {
                        "event": "dispatch_publish_failed",
                        "family": str(family),
                        "topic": topic,
                        "error": str(exc),
                    }
                )
                continue
            self.published += 1
            logger.debug(
                {"event": "dispatch_published", "topic": topic, "payload": payload}
            )

    async def run(self) -> int:
        """Consume until every watched queue is closed; returns publish count."""
        pending: dict[asyncio.Task, SensorFamily] = {}
        for family, queue in self.queues.items():
            pending[asyncio.ensure_future(queue.get())] = family
        logger.info(
            {
                "event": "dispatch_started",
                "families": [str(f) for f in self.queues],
            }
        )
        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                # Table order keeps simultaneous arrivals deterministic.
                for task in sorted(done, key=lambda t: _order(pending[t])):
                    family = pending.pop(task)
                    try:
                        reading = task.result()
                    except QueueClosed:
                        logger.info(
                            {"event": "dispatch_family_closed", "family": str(family)}
                        )
                        continue
                    self.handle(family, reading)
                    pending[asyncio.ensure_future(self.queues[family].get())] = family
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        logger.info(
            {
                "event": "dispatch_stopped",
                "published": self.published,
                "failed": self.failed,
            }
        )
        return self.published


_FAMILY_ORDER = {family: index for index, family in enumerate(FAMILIES)}


def _order(family: SensorFamily) -> int:
    return _FAMILY_ORDER.get(family, len(_FAMILY_ORDER))


__all__ = ["ReadingDispatcher"]
