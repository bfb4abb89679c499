"""Reload worker.

Consumes change batches produced by the debouncer and tells connected
browsers to reload when a batch touches a served file.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from esdev.server.channel import ReloadChannel
from esdev.server.events import ChangeBatch, Notification

logger = logging.getLogger(__name__)


class ReloadWorker:
    """Turn change batches into reload notifications.

    Attributes:
        queue: Queue the debouncer emits ChangeBatches on
        channel: Channel notifications are broadcast through
        is_relevant: Predicate selecting paths that warrant a reload
    """

    def __init__(
        self,
        queue: asyncio.Queue[ChangeBatch],
        channel: ReloadChannel,
        is_relevant: Callable[[Path], bool] | None = None,
    ) -> None:
        self.queue = queue
        self.channel = channel
        self.is_relevant = is_relevant or (lambda path: True)
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Start the processing loop."""
        if self._task is not None:
            logger.warning("ReloadWorker already running")
            return

        self._task = asyncio.create_task(self._process_loop())

    async def stop(self) -> None:
        """Stop the processing loop."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _process_loop(self) -> None:
        while True:
            batch = await self.queue.get()
            try:
                await self.process(batch)
            except Exception as e:
                logger.error(f"Error processing change batch: {e}")
            finally:
                self.queue.task_done()

    async def process(self, batch: ChangeBatch) -> bool:
        """Broadcast a reload if any path in the batch is relevant.

        Returns:
            True if a reload was broadcast
        """
        relevant = [path for path in batch if self.is_relevant(path)]
        if not relevant:
            return False

        logger.info(f"{len(relevant)} file(s) changed, reloading browser")
        for path in relevant:
            logger.debug(f"Changed: {path}")
        await self.channel.broadcast(Notification.reload())
        return True


__all__ = ["ReloadWorker"]
