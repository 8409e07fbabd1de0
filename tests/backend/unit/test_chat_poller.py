"""
Unit tests for services.chat_poller module.
The chat store is mocked; deliveries are captured from a fake writer.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from gibber.core.errors import StoreError
from gibber.services.chat_poller import CHAT_PROMPT, ChatPoller


pytestmark = pytest.mark.asyncio

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def message(text: str, seconds: int):
    # ids follow the stored sequence; seconds doubles as the id
    return SimpleNamespace(id=seconds, text=text, sender_id="peer-id", timestamp=T0 + timedelta(seconds=seconds))


def make_poller(channel, fetch_incoming, last_seen_id=None, interval=0.01):
    chats = MagicMock()
    chats.fetch_incoming = fetch_incoming
    peer = SimpleNamespace(id="peer-id", first_name="Bob")
    return ChatPoller(chats, channel, "self-id", peer, last_seen_id=last_seen_id, interval=interval)


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class TestPollOnce:
    """Tests for a single poll tick."""

    async def test_delivers_each_message_with_prompt(self, make_channel):
        channel, writer = make_channel()
        fetch = AsyncMock(return_value=[message("hi", 1), message("there", 2)])
        poller = make_poller(channel, fetch)

        delivered = await poller.poll_once()

        assert delivered == 2
        assert writer.text == (
            "\n\nBob (2024-01-01T12:00:01+00:00): hi\n" + CHAT_PROMPT
            + "\n\nBob (2024-01-01T12:00:02+00:00): there\n" + CHAT_PROMPT
        )
        assert poller.last_seen_id == 2

    async def test_queries_with_last_seen_id(self, make_channel):
        channel, _ = make_channel()
        fetch = AsyncMock(side_effect=[[message("one", 5)], []])
        poller = make_poller(channel, fetch, last_seen_id=3)

        await poller.poll_once()
        await poller.poll_once()

        first, second = fetch.await_args_list
        assert first.args == ("self-id", "peer-id", 3)
        assert second.args == ("self-id", "peer-id", 5)

    async def test_store_error_delivers_nothing(self, make_channel):
        channel, writer = make_channel()
        poller = make_poller(channel, AsyncMock(side_effect=StoreError("store down")))
        assert await poller.poll_once() == 0
        assert writer.text == ""

    async def test_stop_during_query_suppresses_writes(self, make_channel):
        channel, writer = make_channel()
        poller = None

        async def fetch(*args):
            await poller.stop()
            return [message("late", 1)]

        poller = make_poller(channel, fetch)
        assert await poller.poll_once() == 0
        assert writer.text == ""


class TestLifecycle:
    """Tests for the background task."""

    async def test_stop_before_first_tick_means_no_query(self, make_channel):
        channel, writer = make_channel()
        fetch = AsyncMock(return_value=[message("never", 1)])
        poller = make_poller(channel, fetch, interval=0.2)

        poller.start()
        await poller.stop()

        fetch.assert_not_awaited()
        assert writer.text == ""
        assert poller.running is False

    async def test_polling_continues_after_store_error(self, make_channel):
        channel, writer = make_channel()
        fetch = AsyncMock(side_effect=[StoreError("blip"), [message("after", 1)]] + [[]] * 100)
        poller = make_poller(channel, fetch)

        poller.start()
        await wait_until(lambda: poller.delivered == 1)
        await poller.stop()

        assert "after" in writer.text

    async def test_messages_are_not_delivered_twice(self, make_channel):
        channel, writer = make_channel()
        stored = [message("first", 1), message("second", 2)]

        async def fetch(self_id, peer_id, after_id):
            return [m for m in stored if after_id is None or m.id > after_id]

        poller = make_poller(channel, fetch)
        poller.start()
        await wait_until(lambda: poller.delivered == 2)
        await asyncio.sleep(0.05)  # a few more ticks
        await poller.stop()

        assert poller.delivered == 2
        assert writer.text.count("first") == 1
        assert writer.text.count("second") == 1

    async def test_transport_error_ends_poller(self, make_channel):
        channel, _ = make_channel(fail_writes=True)
        fetch = AsyncMock(return_value=[message("undeliverable", 1)])
        poller = make_poller(channel, fetch)

        task = poller.start()
        await asyncio.wait_for(task, timeout=2)

        assert task.exception() is None
        assert poller.running is False
        await poller.stop()

    async def test_stop_is_idempotent(self, make_channel):
        channel, _ = make_channel()
        poller = make_poller(channel, AsyncMock(return_value=[]))
        poller.start()
        await poller.stop()
        await poller.stop()
