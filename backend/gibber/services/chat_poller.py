# gibber/services/chat_poller.py
"""
Chat Poller

Background task that, while a user is inside a chat, periodically fetches
the peer's new messages and writes them to the user's connection.

Lifecycle:
  - start() spawns the task on the running loop
  - every interval: fetch peer messages stored after last_seen_id, deliver
    each (message + chat prompt) as one write, advance last_seen_id
  - stop() signals the task and waits for it to finish; once stop() was
    called no further store query and no further write happens
"""
import asyncio
import logging

from gibber.core.channel import LineChannel
from gibber.core.errors import NotFound, StoreError, TransportError
from gibber.models.user import User
from gibber.schemas.chat import ChatLine
from gibber.services.chat_store import ChatStore

logger = logging.getLogger(__name__)

CHAT_PROMPT = 'Type message (press "enter" to send, "q" to quit): '


class ChatPoller:
    """Deliver a peer's new chat messages to one connection."""

    def __init__(self, chats: ChatStore, channel: LineChannel, self_id, peer: User,
                 last_seen_id: int | None, interval: float):
        """
        Args:
            chats: Chat store to poll
            channel: Connection to deliver to (shared with the foreground reader)
            self_id: Id of the user owning the connection
            peer: The user on the other side of the chat
            last_seen_id: Id of the last message already shown (None = nothing shown)
            interval: Seconds between polls
        """
        self.chats = chats
        self.channel = channel
        self.self_id = str(self_id)
        self.peer = peer
        self.last_seen_id = last_seen_id
        self.interval = interval
        self.delivered = 0
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name=f"chat-poller-{self.self_id}")
        return self._task

    async def run(self):
        logger.debug("poller started for %s chatting with %s", self.self_id, self.peer.id)
        try:
            while not self._stop.is_set():
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
                if self._stop.is_set():
                    break
                await self.poll_once()
        except TransportError as exc:
            logger.info("poller for %s stopped on transport failure: %s", self.self_id, exc)
        logger.debug("poller stopped for %s", self.self_id)

    async def poll_once(self) -> int:
        """
        Run one poll tick.

        Returns:
            Number of messages delivered

        Raises:
            TransportError: delivery failed (ends the poller)
        """
        if self._stop.is_set():
            return 0
        try:
            messages = await self.chats.fetch_incoming(self.self_id, self.peer.id, self.last_seen_id)
        except (StoreError, NotFound) as exc:
            logger.warning("fetching new messages for %s failed: %s", self.self_id, exc)
            return 0

        count = 0
        for message in messages:
            # the stop signal may arrive while the query is in flight
            if self._stop.is_set():
                break
            line = ChatLine(sender=self.peer.first_name, text=message.text, timestamp=message.timestamp)
            await self.channel.send_lines("\n\n" + line.render() + "\n", CHAT_PROMPT)
            self.last_seen_id = message.id
            count += 1
        self.delivered += count
        return count

    async def stop(self):
        """Signal the poller and wait until it has exited. Safe to call repeatedly."""
        self._stop.set()
        if self._task is None:
            return
        task, self._task = self._task, None
        if task is asyncio.current_task():
            return
        (outcome,) = await asyncio.gather(task, return_exceptions=True)
        if isinstance(outcome, Exception):
            logger.error("poller for %s failed: %s", self.self_id, outcome)
