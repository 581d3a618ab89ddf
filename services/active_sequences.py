"""
Active Sequences Service
========================
Keeps the list of active sequences fresh for the navigation badge and the
handoff-target picker. Polls GET /sequences/active on a fixed interval
while the caller's capability check allows it.
"""

import asyncio
import logging
from typing import Callable, Optional

from config.settings import POLLING
from orchestration.error_handler import TransportFailure
from services.api_client import ConsoleApiClient

logger = logging.getLogger(__name__)


class ActiveSequencesPoller:
    """Caches the active sequence list and its count."""

    def __init__(
        self,
        client: ConsoleApiClient,
        can_view: Callable[[], bool] = lambda: True,
        interval_seconds: Optional[float] = None,
    ):
        self._client = client
        self._can_view = can_view
        self._interval = (
            POLLING["active_sequences_interval_seconds"]
            if interval_seconds is None
            else interval_seconds
        )
        self.sequences: list[dict] = []
        self._task: Optional[asyncio.Task] = None

    @property
    def count(self) -> int:
        return len(self.sequences)

    def handoff_targets(self, exclude_key: Optional[str] = None) -> list[tuple[str, str]]:
        """(sequence_key, display name) pairs for the handoff picker."""
        targets = []
        for sequence in self.sequences:
            key = sequence.get("sequence_key")
            if not key or key == exclude_key:
                continue
            targets.append((key, sequence.get("display_name") or key))
        return targets

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Active sequence refresh failed: {e}", exc_info=True)
            await asyncio.sleep(self._interval)

    async def refresh(self) -> int:
        """Fetch once. On failure the previous list is kept."""
        if not self._can_view():
            return self.count
        try:
            data = await self._client.get_active_sequences()
        except TransportFailure as e:
            logger.error(f"Error fetching active sequences: {e}")
            return self.count
        self.sequences = [s for s in data if isinstance(s, dict)]
        return self.count
