"""Event models for file watching and browser notifications.

Defines the change batch emitted by the debouncer, the notifications
pushed to browsers, and the debouncing queue that sits between the
file watcher and the reload worker.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeBatch:
    """Files that changed within one debounce window.

    Attributes:
        paths: Absolute paths in first-seen order, each at most once
    """

    paths: tuple[Path, ...]

    def __len__(self) -> int:
        return len(self.paths)

    def __iter__(self):
        return iter(self.paths)


@dataclass(frozen=True)
class Notification:
    """A message pushed to every connected browser.

    Attributes:
        type: 'reload' or 'error'
        message: Human readable error text, only for 'error'
    """

    type: str  # 'reload', 'error'
    message: str | None = None

    @classmethod
    def reload(cls) -> Notification:
        return cls(type="reload")

    @classmethod
    def error(cls, message: str) -> Notification:
        return cls(type="error", message=message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON wire payload."""
        if self.type == "error":
            return {"type": "error", "message": self.message or ""}
        return {"type": self.type}


class ChangeDebouncer:
    """Debouncing queue for file changes.

    Collects changed paths and emits them as a single ChangeBatch once no
    new change has arrived for the debounce delay. Every new change cancels
    the pending flush task and schedules a fresh one.

    Attributes:
        debounce_ms: Debounce delay in milliseconds
    """

    def __init__(
        self,
        debounce_ms: int = 1000,
        queue: asyncio.Queue[ChangeBatch] | None = None,
    ) -> None:
        """Initialize the debouncer.

        Args:
            debounce_ms: Debounce delay in milliseconds (default: 1000)
            queue: Queue batches are emitted on (created if omitted)
        """
        self.debounce_ms = debounce_ms
        self.queue: asyncio.Queue[ChangeBatch] = queue if queue is not None else asyncio.Queue()
        self._pending: dict[Path, None] = {}
        self._flush_task: asyncio.Task[None] | None = None

    def put(self, path: Path) -> None:
        """Record a changed path and restart the debounce timer.

        Args:
            path: Absolute path of the changed file
        """
        self._pending[path] = None
        self._cancel_timer()
        self._flush_task = asyncio.get_running_loop().create_task(self._flush_after_delay())

    async def _flush_after_delay(self) -> None:
        """Wait for the debounce delay then emit the pending batch."""
        await asyncio.sleep(self.debounce_ms / 1000.0)
        self._flush_task = None
        self._emit()

    def _emit(self) -> None:
        if not self._pending:
            return
        batch = ChangeBatch(paths=tuple(self._pending))
        self._pending.clear()
        self.queue.put_nowait(batch)
        logger.debug(f"Emitted change batch with {len(batch)} paths")

    def _cancel_timer(self) -> None:
        if self._flush_task is not None:
            self._flush_task.cancel()
            self._flush_task = None

    async def get(self) -> ChangeBatch:
        """Get the next change batch, waiting until one is available."""
        return await self.queue.get()

    def flush(self) -> None:
        """Immediately emit all pending changes.

        Useful for shutdown or testing.
        """
        self._cancel_timer()
        self._emit()

    def close(self) -> None:
        """Cancel the pending timer and drop pending changes."""
        self._cancel_timer()
        self._pending.clear()

    def pending_count(self) -> int:
        """Number of paths waiting for the debounce window to close."""
        return len(self._pending)

    @property
    def is_scheduled(self) -> bool:
        """True while a flush is pending."""
        return self._flush_task is not None and not self._flush_task.done()


__all__ = [
    "ChangeBatch",
    "Notification",
    "ChangeDebouncer",
]
