"""Asyncio TCP listener for RFC 5424 syslog."""

import asyncio
import logging
import re
from typing import Optional, Set

from syslogidx.core.config import Settings
from syslogidx.services.syslog_parser import SyslogParseError, parse_syslog_line
from syslogidx.services.syslog_service import SyslogHandler

logger = logging.getLogger(__name__)

# RFC 6587 octet counting: "<len> <34>1 ..."
_OCTET_COUNT_RE = re.compile(r'^\d+ (?=<)')


def decode_frame(line: bytes) -> str:
    """Turn one received line into the text of a syslog record."""
    text = line.decode("utf-8", errors="replace").rstrip("\r\n")
    return _OCTET_COUNT_RE.sub("", text, count=1)


class SyslogListener:
    """
    Accepts syslog over TCP, one record per line, and hands every parsed
    record to the handler.

    Connections are served concurrently. Records on one connection are
    handled in order, so a slow index write only holds up its own connection.
    """

    def __init__(self, settings: Settings, handler: SyslogHandler) -> None:
        self.settings = settings
        self.handler = handler
        self.server: Optional[asyncio.AbstractServer] = None
        self._connections: Set[asyncio.Task] = set()

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    @property
    def address(self) -> Optional[tuple]:
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()

    async def start(self) -> None:
        """
        Bind and start accepting connections.

        Raises:
            OSError: the address could not be bound
        """
        self.server = await asyncio.start_server(
            self._client_connected,
            self.settings.syslog_host,
            self.settings.syslog_port,
            limit=self.settings.syslog_max_line,
        )
        addrs = ", ".join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.info(f"Syslog listener accepting connections on {addrs}")

    async def _client_connected(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            await self.handle_connection(reader, writer)
        finally:
            if task is not None:
                self._connections.discard(task)

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Read records until the peer disconnects."""
        peer = writer.get_extra_info("peername")
        peer_str = f"{peer[0]}:{peer[1]}" if peer else "unknown"
        logger.debug(f"New syslog connection from {peer_str}")

        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError as e:
                    # Oversized line; the reader has already discarded it
                    logger.error(f"Dropping oversized syslog line from {peer_str}: {e}")
                    continue
                if not line:
                    break

                text = decode_frame(line)
                if not text.strip():
                    continue

                try:
                    parts = parse_syslog_line(text)
                except SyslogParseError as e:
                    logger.error(f"Failed to parse syslog line from {peer_str}: {e}")
                    continue

                await self.handler.handle(parts)
        except ConnectionResetError:
            logger.debug(f"Connection reset by {peer_str}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            logger.debug(f"Syslog connection closed: {peer_str}")

    async def stop(self) -> None:
        """Stop accepting and drop open connections."""
        if self.server is not None:
            self.server.close()
            for task in list(self._connections):
                task.cancel()
            await asyncio.gather(*self._connections, return_exceptions=True)
            await self.server.wait_closed()
            self.server = None
            logger.info("Syslog listener stopped")
