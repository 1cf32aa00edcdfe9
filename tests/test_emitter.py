from __future__ import annotations

import asyncio

import pytest

from pyconfwatch.emitter import Broadcaster


def test_subscribers_receive_values_in_publish_order() -> None:
    channel: Broadcaster[int] = Broadcaster("test")
    first: list[int] = []
    second: list[int] = []
    channel.subscribe(first.append)
    channel.subscribe(second.append)

    for value in (1, 2, 3):
        channel.publish(value)

    assert first == [1, 2, 3]
    assert second == [1, 2, 3]


def test_no_history_for_late_subscribers() -> None:
    channel: Broadcaster[str] = Broadcaster("test")
    channel.publish("early")
    seen: list[str] = []
    channel.subscribe(seen.append)
    channel.publish("late")
    assert seen == ["late"]


def test_close_drops_callbacks_and_further_publishes() -> None:
    channel: Broadcaster[int] = Broadcaster("test")
    seen: list[int] = []
    channel.subscribe(seen.append)
    channel.close()
    channel.close()
    channel.publish(1)

    assert channel.closed
    assert channel.subscriber_count == 0
    assert seen == []


@pytest.mark.asyncio
async def test_stream_registers_on_call_and_ends_on_close() -> None:
    channel: Broadcaster[int] = Broadcaster("test")
    stream = channel.stream()
    assert channel.subscriber_count == 1

    channel.publish(1)
    channel.publish(2)
    channel.close()

    assert [value async for value in stream] == [1, 2]
    assert channel.subscriber_count == 0


@pytest.mark.asyncio
async def test_stream_on_closed_channel_is_empty() -> None:
    channel: Broadcaster[int] = Broadcaster("test")
    channel.close()
    assert [value async for value in channel.stream()] == []


@pytest.mark.asyncio
async def test_stream_consumer_can_wait_for_values() -> None:
    channel: Broadcaster[str] = Broadcaster("test")
    stream = channel.stream()

    async def consume() -> list[str]:
        return [value async for value in stream]

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    channel.publish("a")
    await asyncio.sleep(0)
    channel.publish("b")
    channel.close()

    assert await task == ["a", "b"]
