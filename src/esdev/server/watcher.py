"""File system watcher for live reload.

Watches the server root with watchfiles, but only reports files the
server has actually served. Files are subscribed lazily as responses go
out, so editing a file nobody requested never reloads a browser.

Subscription only filters which events are reported. The OS-level watch
still covers the whole of ``root_dir``, excluded directories such as
``node_modules`` included.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import Callable, Iterable
from functools import lru_cache
from pathlib import Path

from watchfiles import Change, awatch

from esdev.errors import WatchSetupError

logger = logging.getLogger(__name__)

# watchfiles groups raw events for this long; the ChangeDebouncer owns the
# configured quiet period
RAW_EVENT_WINDOW_MS = 50


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a path glob into a regex.

    ``*`` and ``?`` stay within one path segment, ``**`` spans segments
    and ``**/`` may also match nothing.
    """
    parts: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        elif pattern[i] == "[" and "]" in pattern[i + 2 :]:
            end = pattern.index("]", i + 2)
            body = pattern[i + 1 : end]
            if body.startswith("!"):
                body = "^" + body[1:]
            parts.append("[" + body.replace("\\", "\\\\") + "]")
            i = end + 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(parts))


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    """Check a root-relative POSIX path against exclusion globs.

    ``node_modules/**`` excludes the whole dependency tree, ``src/*.js``
    only the scripts directly in ``src`` and ``**/*.map`` source maps at
    any depth, the root included.
    """
    return any(_compile_glob(pattern).fullmatch(relative_path) for pattern in patterns)


class ChangeWatcher:
    """Async filesystem watcher with lazy subscription and exclusion globs.

    Attributes:
        root_dir: Directory watched recursively
        excludes: Globs of root-relative paths that are never reported
        on_change: Callback invoked with the path of each reported change
    """

    def __init__(
        self,
        root_dir: Path,
        excludes: Iterable[str],
        on_change: Callable[[Path], None],
    ) -> None:
        self.root_dir = root_dir.resolve()
        self.excludes = tuple(excludes)
        self.on_change = on_change
        self._subscribed: set[Path] = set()
        self._skipped: set[Path] = set()
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Start watching in a background task."""
        if self._task is not None:
            logger.warning("ChangeWatcher already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._watch())
        logger.info(f"Watching {self.root_dir} for changes")

    async def stop(self) -> None:
        """Stop watching and wait for the background task to finish."""
        if self._task is None:
            return

        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # The watch loop already died; its error was logged when it did
            logger.debug(f"ChangeWatcher task ended with error: {e}")
        finally:
            self._task = None
            self._subscribed.clear()
        logger.info("ChangeWatcher stopped")

    async def _watch(self) -> None:
        """Main watch loop."""
        try:
            async for changes in awatch(
                self.root_dir,
                stop_event=self._stop_event,
                watch_filter=self._watch_filter,
                debounce=RAW_EVENT_WINDOW_MS,
            ):
                self.dispatch(changes)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"ChangeWatcher error: {e}")
            raise

    def _watch_filter(self, change: Change, path: str) -> bool:
        return self.should_report(Path(path))

    def dispatch(self, changes: Iterable[tuple[Change, str]]) -> None:
        """Forward raw watchfiles events that pass the filters.

        Args:
            changes: (change type, path) pairs as yielded by watchfiles
        """
        for _change, path_str in changes:
            path = Path(path_str)
            if self.should_report(path):
                self.on_change(path)

    def subscribe(self, path: Path) -> bool:
        """Start reporting changes to a served file.

        An unreadable path is reported once and then skipped.

        Args:
            path: Absolute path of a file that was just served

        Returns:
            True if the path is now watched
        """
        path = path.resolve()
        if path in self._subscribed:
            return True
        if path in self._skipped:
            return False
        if self.is_excluded(path):
            return False

        if not os.access(path, os.R_OK):
            self._skipped.add(path)
            error = WatchSetupError(f"Cannot watch unreadable path: {path}", path=str(path))
            logger.warning(error.message)
            return False

        self._subscribed.add(path)
        logger.debug(f"Watching {path}")
        return True

    def is_subscribed(self, path: Path) -> bool:
        return path.resolve() in self._subscribed

    def is_excluded(self, path: Path) -> bool:
        """Check a path against the exclusion globs (outside root is excluded)."""
        try:
            relative = path.resolve().relative_to(self.root_dir).as_posix()
        except ValueError:
            return True
        return matches_any(relative, self.excludes)

    def should_report(self, path: Path) -> bool:
        return self.is_subscribed(path) and not self.is_excluded(path)

    @property
    def watched_count(self) -> int:
        return len(self._subscribed)

    @property
    def is_running(self) -> bool:
        """Check if the watcher is currently running."""
        return self._task is not None and not self._task.done()


__all__ = [
    "ChangeWatcher",
    "matches_any",
]
