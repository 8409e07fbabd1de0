# gibber/core/channel.py
"""
Line channel for client connections.
Wraps an asyncio stream pair with newline-delimited UTF-8 reads and writes,
shared by the foreground session and its background chat poller.
"""
import asyncio
import logging

from gibber.core.errors import TransportError

logger = logging.getLogger(__name__)


class LineChannel:
    """
    Newline-delimited text channel over one client connection.

    Reads:
      - read_line() returns one line with its trailing newline (and any "\\r")
        removed
      - EOF or a socket failure raises TransportError

    Writes:
      - send() writes a prompt (no newline) or a full line
      - all writes go through one asyncio.Lock, so a background delivery can
        never land in the middle of a foreground line
    """

    def __init__(self, reader: asyncio.StreamReader, writer, peer: str | None = None):
        """
        Args:
            reader: Stream to read client lines from
            writer: Stream writer (anything with write/drain/close/wait_closed)
            peer: Printable client address, used in log lines
        """
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()
        self._closed = False
        if peer is None:
            info = writer.get_extra_info("peername") if hasattr(writer, "get_extra_info") else None
            peer = f"{info[0]}:{info[1]}" if info else "unknown"
        self.peer = peer

    @property
    def closed(self) -> bool:
        return self._closed

    # -------- read --------
    async def read_line(self) -> str:
        """
        Read one line from the client.

        Returns:
            The line without its line terminator (may be empty)

        Raises:
            TransportError: connection closed or read failed
        """
        if self._closed:
            raise TransportError(f"channel to {self.peer} is closed")
        try:
            raw = await self._reader.readline()
        except (ConnectionError, OSError, asyncio.LimitOverrunError, ValueError) as exc:
            logger.warning("reading from client %s failed: %s", self.peer, exc)
            raise TransportError(f"error while reading from {self.peer}: {exc}") from exc
        if not raw:
            raise TransportError(f"connection closed by {self.peer}")
        return raw.decode("utf-8", errors="replace").rstrip("\r\n")

    # -------- write --------
    async def send(self, text: str, newline: bool = True):
        """
        Write text to the client.

        Args:
            text: Text to write
            newline: Append a trailing newline (False for same-line prompts)

        Raises:
            TransportError: write or flush failed
        """
        if newline:
            text += "\n"
        await self._write(text.encode("utf-8"))

    async def send_lines(self, *parts: str):
        """Write several already-terminated chunks as one uninterrupted write."""
        await self._write("".join(parts).encode("utf-8"))

    async def _write(self, data: bytes):
        if self._closed:
            raise TransportError(f"channel to {self.peer} is closed")
        async with self._write_lock:
            try:
                self._writer.write(data)
                await self._writer.drain()
            except (ConnectionError, OSError, RuntimeError) as exc:
                logger.warning("writing to client %s failed: %s", self.peer, exc)
                raise TransportError(f"error while writing to {self.peer}: {exc}") from exc

    async def close(self):
        """Close the underlying connection; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        logger.info("client %s => closing connection", self.peer)
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug("closing connection to %s: %s", self.peer, exc)
