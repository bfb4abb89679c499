"""Reload channel stage.

Serves the browser side of the reload channel and turns transform
failures further down the pipeline into an error response for the
triggering request plus an ``error`` notification for every open tab.
"""

from __future__ import annotations

import asyncio
import logging

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from esdev.errors import TransformError
from esdev.paths import RELOAD_CHANNEL_PATH, RELOAD_CLIENT_PATH
from esdev.server.channel import ReloadChannel
from esdev.server.events import Notification
from esdev.stages.base import CallNext
from esdev.stages.html import EntryDocumentInjector

logger = logging.getLogger(__name__)

RELOAD_CLIENT_SCRIPT = f"""\
(function () {{
  var protocol = location.protocol === 'https:' ? 'wss://' : 'ws://';
  var socket = new WebSocket(protocol + location.host + '{RELOAD_CHANNEL_PATH}');
  socket.addEventListener('message', function (event) {{
    var message = JSON.parse(event.data);
    if (message.type === 'reload') {{
      location.reload();
    }} else if (message.type === 'error') {{
      console.error('[es-dev-server] ' + message.message);
    }}
  }});
}})();
"""


class ReloadChannelStage:
    """Serve the reload client and report transform errors to browsers.

    When no HTML transform stage runs, the stage injects the reload client
    into the entry document itself through the given injector.
    """

    def __init__(
        self,
        channel: ReloadChannel,
        injector: EntryDocumentInjector | None = None,
    ) -> None:
        self.channel = channel
        self.injector = injector
        self._pending: set[asyncio.Task[int]] = set()

    def notify_error(self, message: str) -> asyncio.Task[int]:
        """Broadcast an error notification without waiting for delivery."""
        task = asyncio.create_task(self.channel.broadcast(Notification.error(message)))
        self._pending.add(task)
        task.add_done_callback(self._broadcast_done)
        return task

    def _broadcast_done(self, task: asyncio.Task[int]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error broadcasting transform error: {error}")

    @property
    def pending_broadcasts(self) -> int:
        return len(self._pending)

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if request.url.path == RELOAD_CLIENT_PATH:
            return Response(
                RELOAD_CLIENT_SCRIPT,
                media_type="application/javascript",
                headers={"cache-control": "no-cache"},
            )

        try:
            response = await call_next(request)
        except TransformError as e:
            logger.error(f"Error transforming {e.file_path}: {e.message}")
            self.notify_error(str(e))
            return PlainTextResponse(
                f"Error transforming {e.file_path}: {e.message}",
                status_code=500,
            )

        if self.injector is not None:
            response = await self.injector.apply(response)
        return response


__all__ = ["ReloadChannelStage", "RELOAD_CLIENT_SCRIPT"]
