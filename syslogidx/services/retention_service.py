import asyncio
import logging
import random
from typing import Callable, Iterable, List, Optional

from syslogidx.core.config import Settings
from syslogidx.models.log import INDEX_PREFIX
from syslogidx.services.elasticsearch_service import ElasticsearchService

logger = logging.getLogger(__name__)

# "log-" + "YYYY.MM.DD"
DATED_INDEX_LENGTH = len(INDEX_PREFIX) + 10


def is_dated_index(name: str) -> bool:
    return len(name) == DATED_INDEX_LENGTH and name.startswith(INDEX_PREFIX)


def indices_to_delete(names: Iterable[str], retain: int) -> List[str]:
    """
    Pick the dated indices that fall outside the retention window.

    The zero-padded date suffix makes lexicographic order chronological, so
    everything but the last ``retain`` names in sorted order goes.
    """
    dated = sorted(name for name in names if is_dated_index(name))
    if retain < 0 or len(dated) <= retain:
        return []
    return dated[:len(dated) - retain]


class RetentionSweep:
    """
    Deletes daily log indices older than the retention window.

    Runs once a day after a random initial delay so several instances of the
    service don't all sweep at the same moment.
    """

    def __init__(
        self,
        settings: Settings,
        backend: ElasticsearchService,
        stop_event: Optional[asyncio.Event] = None,
        jitter: Callable[[float, float], float] = random.uniform
    ):
        self.settings = settings
        self.backend = backend
        self.stop_event = stop_event or asyncio.Event()
        self.jitter = jitter

    async def _sleep(self, seconds: float) -> bool:
        """Sleep, returning True early when the sweep is stopped."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def sweep(self) -> List[str]:
        """
        Run one retention pass.

        Returns:
            Names of the indices that were deleted
        """
        try:
            aliases = await self.backend.aliases()
        except Exception as e:
            logger.error(f"Failed to get index aliases: {e!r}")
            return []

        deleted = []
        for index in indices_to_delete(aliases, self.settings.retain_days):
            try:
                await self.backend.delete_index(index)
            except Exception as e:
                logger.error(f"Failed to delete index {index}: {e!r}")
                continue
            deleted.append(index)

        logger.info(f"Retention sweep deleted {len(deleted)} index(es), keeping {self.settings.retain_days} days")
        return deleted

    async def run(self) -> None:
        """Sweep every ``retention_interval`` seconds until stopped."""
        delay = self.jitter(0, self.settings.retention_max_jitter)
        logger.info(f"First retention sweep in {delay:.0f}s")
        if await self._sleep(delay):
            return

        while True:
            await self.sweep()
            if await self._sleep(self.settings.retention_interval):
                return
