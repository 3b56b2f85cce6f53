import asyncio

import pytest

from addon.thingy_core.reading_queue import QueueClosed, QueueFull, ReadingQueue
from conftest import settle


@pytest.mark.asyncio
async def test_accepts_capacity_items_without_consumer():
    q = ReadingQueue("temperature")
    for i in range(10):
        await asyncio.wait_for(q.put(i), timeout=0.5)
    assert q.qsize() == 10
    assert q.full()


@pytest.mark.asyncio
async def test_eleventh_put_blocks_until_a_get():
    q = ReadingQueue("temperature")
    for i in range(10):
        await q.put(i)
    blocked = asyncio.ensure_future(q.put(10))
    await settle()
    assert not blocked.done()

    assert await q.get() == 0
    await asyncio.wait_for(blocked, timeout=0.5)
    assert q.qsize() == 10


@pytest.mark.asyncio
async def test_blocked_producers_keep_fifo_order():
    q = ReadingQueue("gas", capacity=2)
    await q.put("a")
    await q.put("b")
    producers = [asyncio.ensure_future(q.put(x)) for x in ("c", "d", "e")]
    await settle()
    got = [await q.get() for _ in range(5)]
    await asyncio.gather(*producers)
    assert got == ["a", "b", "c", "d", "e"]


@pytest.mark.asyncio
async def test_get_waits_for_put():
    q = ReadingQueue("humidity")
    getter = asyncio.ensure_future(q.get())
    await settle()
    assert not getter.done()
    await q.put(55)
    assert await asyncio.wait_for(getter, timeout=0.5) == 55


@pytest.mark.asyncio
async def test_close_drains_buffer_then_raises():
    q = ReadingQueue("pressure")
    await q.put(1)
    await q.put(2)
    assert q.close() is True
    assert await q.get() == 1
    assert await q.get() == 2
    with pytest.raises(QueueClosed):
        await q.get()


@pytest.mark.asyncio
async def test_close_happens_once():
    q = ReadingQueue("pressure")
    assert q.close() is True
    assert q.close() is False
    assert q.closed


@pytest.mark.asyncio
async def test_close_wakes_waiting_getter():
    q = ReadingQueue("color")
    getter = asyncio.ensure_future(q.get())
    await settle()
    q.close()
    with pytest.raises(QueueClosed):
        await asyncio.wait_for(getter, timeout=0.5)


@pytest.mark.asyncio
async def test_close_wakes_blocked_producer():
    q = ReadingQueue("button", capacity=1)
    await q.put(True)
    producer = asyncio.ensure_future(q.put(False))
    await settle()
    q.close()
    with pytest.raises(QueueClosed):
        await asyncio.wait_for(producer, timeout=0.5)


@pytest.mark.asyncio
async def test_put_after_close_raises():
    q = ReadingQueue("button")
    q.close()
    with pytest.raises(QueueClosed):
        await q.put(True)


@pytest.mark.asyncio
async def test_drop_oldest_never_blocks(caplog_level):
    q = ReadingQueue("temperature", capacity=2, overflow="drop_oldest")
    for i in range(4):
        await asyncio.wait_for(q.put(i), timeout=0.5)
    assert q.dropped == 2
    assert [await q.get(), await q.get()] == [2, 3]
    assert "reading_queue_overflow" in caplog_level.text


@pytest.mark.asyncio
async def test_drop_newest_keeps_buffer():
    q = ReadingQueue("temperature", capacity=2, overflow="drop_newest")
    for i in range(4):
        await asyncio.wait_for(q.put(i), timeout=0.5)
    assert q.dropped == 2
    assert [await q.get(), await q.get()] == [0, 1]


def test_rejects_bad_arguments():
    with pytest.raises(ValueError):
        ReadingQueue("gas", capacity=0)
    with pytest.raises(ValueError):
        ReadingQueue("gas", overflow="spill")


@pytest.mark.asyncio
async def test_put_nowait_raises_when_block_queue_full():
    q = ReadingQueue("humidity", capacity=2)
    q.put_nowait(1)
    q.put_nowait(2)
    with pytest.raises(QueueFull):
        q.put_nowait(3)
    assert q.qsize() == 2


@pytest.mark.asyncio
async def test_put_nowait_does_not_overtake_waiting_producer():
    q = ReadingQueue("humidity", capacity=1)
    q.put_nowait("a")
    producer = asyncio.ensure_future(q.put("b"))
    await settle()
    assert await q.get() == "a"
    # "b" still owns the slot it was waiting for
    with pytest.raises(QueueFull):
        q.put_nowait("c")
    await producer
    assert await q.get() == "b"


@pytest.mark.asyncio
async def test_put_nowait_applies_drop_policies():
    newest = ReadingQueue("gas", capacity=1, overflow="drop_newest")
    newest.put_nowait("a")
    newest.put_nowait("b")
    oldest = ReadingQueue("gas", capacity=1, overflow="drop_oldest")
    oldest.put_nowait("a")
    oldest.put_nowait("b")
    assert (await newest.get(), await oldest.get()) == ("a", "b")
    assert newest.dropped == oldest.dropped == 1


@pytest.mark.asyncio
async def test_put_nowait_after_close_raises():
    q = ReadingQueue("button")
    q.close()
    with pytest.raises(QueueClosed):
        q.put_nowait(True)
