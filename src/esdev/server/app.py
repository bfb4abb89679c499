"""FastAPI application for the esdev server.

Wires one server instance together: the file watcher feeds the
debouncer, the debouncer feeds the reload worker, the worker broadcasts
through the reload channel, and every HTTP request runs through the
assembled pipeline.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket

from esdev import __version__
from esdev.config import ServerConfig, StageFlags, derive_stage_flags
from esdev.paths import RELOAD_CHANNEL_PATH
from esdev.pipeline import Pipeline, assemble_pipeline
from esdev.server.channel import ReloadChannel
from esdev.server.events import ChangeBatch, ChangeDebouncer
from esdev.server.reloader import ReloadWorker
from esdev.server.watcher import ChangeWatcher
from esdev.transform.base import CodeTransformer
from esdev.transform.resolver import default_transformer

logger = logging.getLogger(__name__)

HTTP_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class ServerState:
    """Everything owned by one running server instance."""

    def __init__(
        self,
        config: ServerConfig,
        transformer: CodeTransformer | None = None,
    ) -> None:
        self.config = config
        self.flags: StageFlags = derive_stage_flags(config)

        self.channel: ReloadChannel | None = None
        self.debouncer: ChangeDebouncer | None = None
        self.watcher: ChangeWatcher | None = None
        self.worker: ReloadWorker | None = None

        if self.flags.needs_reload_channel:
            self.channel = ReloadChannel()

        if config.watch and self.channel is not None:
            queue: asyncio.Queue[ChangeBatch] = asyncio.Queue()
            self.debouncer = ChangeDebouncer(config.watch_debounce, queue)
            self.watcher = ChangeWatcher(
                config.root_dir,
                config.watch_excludes,
                self.debouncer.put,
            )
            self.worker = ReloadWorker(queue, self.channel, self.watcher.is_subscribed)

        if self.flags.needs_transform and transformer is None:
            transformer = default_transformer(config)
        self.transformer = transformer

        self.pipeline: Pipeline = assemble_pipeline(
            config,
            self.flags,
            channel=self.channel,
            watcher=self.watcher,
            transformer=self.transformer,
        )

    async def start(self) -> None:
        if self.watcher is not None and self.worker is not None:
            await self.watcher.start()
            await self.worker.start()

    async def stop(self) -> None:
        """Release the watcher, the debounce timer and every browser connection.

        Each step runs even if an earlier one fails; browser connections
        are closed last.
        """
        try:
            try:
                try:
                    if self.watcher is not None:
                        await self.watcher.stop()
                finally:
                    if self.debouncer is not None:
                        self.debouncer.close()
            finally:
                if self.worker is not None:
                    await self.worker.stop()
        finally:
            if self.channel is not None:
                await self.channel.close()


def create_app(
    config: ServerConfig,
    transformer: CodeTransformer | None = None,
) -> FastAPI:
    """Create the FastAPI application for a server configuration.

    Args:
        config: Resolved server configuration
        transformer: Code transformer for module sources; defaults to the
            bundled one when the configuration needs a transform stage

    Returns:
        Configured FastAPI application
    """
    state = ServerState(config, transformer)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start watching on startup; release everything on shutdown."""
        logger.info(f"Starting es-dev-server, root: {config.root_dir}")
        await state.start()

        yield

        logger.info("Shutting down es-dev-server")
        await state.stop()
        logger.info("es-dev-server shutdown complete")

    app = FastAPI(
        title="es-dev-server",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.server = state

    if state.channel is not None:
        channel = state.channel

        @app.websocket(RELOAD_CHANNEL_PATH)
        async def reload_channel(websocket: WebSocket) -> None:
            """WebSocket endpoint for reload and error notifications."""
            await channel.serve(websocket)

    app.router.add_route(
        "/{path:path}",
        state.pipeline.handle,
        methods=HTTP_METHODS,
        include_in_schema=False,
    )

    return app


__all__ = ["create_app", "ServerState"]
