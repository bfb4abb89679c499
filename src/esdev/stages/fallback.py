"""History API fallback stage.

Answers client-side routes such as ``/users/42`` with the entry
document so single page applications can route in the browser.
"""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path

from starlette.requests import Request
from starlette.responses import Response

from esdev.paths import is_within
from esdev.stages.base import CallNext, with_path
from esdev.stages.static import lookup_file

logger = logging.getLogger(__name__)


class HistoryFallbackStage:
    def __init__(self, root_dir: Path, app_index: str, app_index_dir: str) -> None:
        self.root_dir = root_dir
        self.app_index = app_index
        self.app_index_dir = app_index_dir

    @staticmethod
    def is_navigation(request: Request) -> bool:
        """A request without a file extension, or one explicitly asking for HTML."""
        if "text/html" in request.headers.get("accept", ""):
            return True
        return not posixpath.splitext(request.url.path)[1]

    async def should_rewrite(self, request: Request) -> bool:
        path = request.url.path
        if request.method not in ("GET", "HEAD") or path == self.app_index:
            return False
        if not is_within(path, self.app_index_dir):
            return False
        if not self.is_navigation(request):
            return False
        return await lookup_file(path, self.root_dir) is None

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if await self.should_rewrite(request):
            logger.debug(f"History fallback: {request.url.path} -> {self.app_index}")
            request = with_path(request, self.app_index)
        return await call_next(request)


__all__ = ["HistoryFallbackStage"]
