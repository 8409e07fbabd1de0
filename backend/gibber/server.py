# gibber/server.py
"""
TCP listener and session supervisor.
Every accepted connection gets its own LineChannel and Session, running as
one asyncio task; the channel is always closed when the session ends.
"""
import asyncio
import logging

from gibber.config import Settings, settings as default_settings
from gibber.core.channel import LineChannel
from gibber.services.session import Session
from gibber.services.stores import Stores

logger = logging.getLogger(__name__)


class SessionSupervisor:
    """Accepts client connections and runs one Session per connection."""

    def __init__(self, stores: Stores, config: Settings | None = None):
        self.stores = stores
        self.settings = config or default_settings
        self.sessions: set[Session] = set()
        self._server: asyncio.base_events.Server | None = None

    async def handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """asyncio.start_server callback: serve one client until its session ends."""
        channel = LineChannel(reader, writer)
        logger.info("client %s => connected", channel.peer)
        session = Session(channel, self.stores, self.settings)
        self.sessions.add(session)
        try:
            outcome = await session.run()
            if outcome:
                logger.info("client %s => session ended: %s", channel.peer, outcome)
        finally:
            self.sessions.discard(session)
            await channel.close()

    async def start(self) -> asyncio.base_events.Server:
        self._server = await asyncio.start_server(self.handle, self.settings.host, self.settings.port)
        for sock in self._server.sockets:
            logger.info("listening on %s", sock.getsockname())
        return self._server

    async def serve(self):
        """Listen and serve clients until cancelled."""
        server = await self.start()
        async with server:
            await server.serve_forever()
