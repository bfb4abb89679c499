"""Watch stage: subscribe every file the server hands out."""

from __future__ import annotations

from starlette.requests import Request
from starlette.responses import Response

from esdev.server.watcher import ChangeWatcher
from esdev.stages.base import CallNext, served_file


class WatchStage:
    def __init__(self, watcher: ChangeWatcher) -> None:
        self.watcher = watcher

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        path = served_file(response)
        if path is not None and response.status_code == 200:
            self.watcher.subscribe(path)
        return response


__all__ = ["WatchStage"]
