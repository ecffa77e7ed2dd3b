"""
Archive of raw syslog entries in S3.

Entries are buffered in memory and written out as gzip'd JSON lines, one
object per flush, under ``<prefix>YYYY/MM/DD/<hostname>-<nanos>.json.gz``.
"""

import asyncio
import gzip
import json
import logging
import socket
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from syslogidx.core.config import Settings
from syslogidx.models.log import LogEntry
from syslogidx.services.aws_clients import S3ObjectStore

logger = logging.getLogger(__name__)

# Entries kept while uploads fail, as a multiple of archive_max_entries
MAX_BUFFERED_BATCHES = 10


class LogArchiver:
    """Buffers syslog entries and periodically ships them to S3."""

    def __init__(
        self,
        settings: Settings,
        store: S3ObjectStore,
        stop_event: Optional[asyncio.Event] = None,
        hostname: Optional[str] = None
    ):
        if not settings.archive_s3_bucket:
            raise ValueError("archive_s3_bucket must be set to archive logs")
        self.settings = settings
        self.store = store
        self.stop_event = stop_event or asyncio.Event()
        self.hostname = hostname or socket.gethostname()
        self._lock = threading.Lock()
        self._buffer: List[Dict[str, Any]] = []
        self._full = asyncio.Event()
        self._backing_off = False
        self._dropped = 0

    @property
    def buffer_limit(self) -> int:
        return self.settings.archive_max_entries * MAX_BUFFERED_BATCHES

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    def _trim(self) -> None:
        # Caller holds the lock; oldest entries go first
        overflow = len(self._buffer) - self.buffer_limit
        if overflow > 0:
            del self._buffer[:overflow]
            self._dropped += overflow

    def add(self, entry: LogEntry) -> None:
        with self._lock:
            self._buffer.append(entry.to_archive_dict())
            self._trim()
            full = len(self._buffer) >= self.settings.archive_max_entries and not self._backing_off
        if full:
            self._full.set()

    def object_key(self, now: datetime) -> str:
        return (
            f"{self.settings.archive_prefix}{now.strftime('%Y/%m/%d')}/"
            f"{self.hostname}-{time.time_ns()}.json.gz"
        )

    @staticmethod
    def encode(entries: List[Dict[str, Any]]) -> bytes:
        lines = "".join(json.dumps(e) + "\n" for e in entries)
        return gzip.compress(lines.encode("utf-8"))

    async def flush(self) -> int:
        """
        Upload everything buffered so far.

        Returns:
            Number of entries archived. On failure the entries go back to the
            front of the buffer and the archiver backs off for a full
            ``archive_flush_interval`` before trying again.
        """
        with self._lock:
            batch, self._buffer = self._buffer, []
            dropped, self._dropped = self._dropped, 0
        self._full.clear()
        if dropped:
            logger.warning(f"Archive buffer full while uploads were failing, dropped {dropped} oldest entries")
        if not batch:
            return 0

        key = self.object_key(datetime.now(timezone.utc))
        try:
            await self.store.put_object(
                self.settings.archive_s3_bucket,
                key,
                self.encode(batch),
                ContentType="application/json",
                ContentEncoding="gzip"
            )
        except Exception as e:
            logger.error(f"Failed to archive {len(batch)} entries to s3://{self.settings.archive_s3_bucket}/{key}: {e!r}")
            with self._lock:
                self._buffer = batch + self._buffer
                self._trim()
                self._backing_off = True
            return 0

        with self._lock:
            self._backing_off = False
        logger.info(f"Archived {len(batch)} entries to s3://{self.settings.archive_s3_bucket}/{key}")
        return len(batch)

    async def _wait(self) -> None:
        waiters = [asyncio.ensure_future(self.stop_event.wait())]
        if not self._backing_off:
            waiters.append(asyncio.ensure_future(self._full.wait()))
        try:
            await asyncio.wait(
                waiters,
                timeout=self.settings.archive_flush_interval,
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def run(self) -> None:
        """Flush on interval or when the buffer fills, and once more on stop."""
        while not self.stop_event.is_set():
            await self._wait()
            await self.flush()
