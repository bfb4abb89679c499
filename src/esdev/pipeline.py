"""Request pipeline assembly.

The set of stages is decided once, from the stage flags, when a server
instance is created. Requests never branch on raw configuration: they
run through whatever tuple of stages was assembled.

Stage order, each present only if needed:

    custom middlewares -> etag -> reload channel -> watch -> code transform
        -> html transform -> history fallback -> static files
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from functools import partial

from starlette.requests import Request
from starlette.responses import Response

from esdev.config import ServerConfig, StageFlags
from esdev.server.channel import ReloadChannel
from esdev.server.watcher import ChangeWatcher
from esdev.stages import (
    CodeTransformStage,
    HistoryFallbackStage,
    HtmlTransformStage,
    ReloadChannelStage,
    StaticFileStage,
    WatchStage,
    etag_stage,
)
from esdev.stages.base import CallNext, Handler, Stage
from esdev.stages.html import EntryDocumentInjector, reload_client_markup
from esdev.transform.base import CodeTransformer

logger = logging.getLogger(__name__)


async def _invoke(stage: Stage, call_next: CallNext, request: Request) -> Response:
    return await stage(request, call_next)


@dataclass(frozen=True)
class PipelineStage:
    name: str
    handler: Stage


class Pipeline:
    """An ordered, immutable chain of stages ending in a terminal handler."""

    def __init__(self, stages: Sequence[PipelineStage], endpoint: Handler) -> None:
        self.stages = tuple(stages)
        self.endpoint = endpoint

        handler: Handler = endpoint
        for stage in reversed(self.stages):
            handler = partial(_invoke, stage.handler, handler)
        self._handler = handler

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    async def handle(self, request: Request) -> Response:
        """Run a request through every stage."""
        return await self._handler(request)


def assemble_pipeline(
    config: ServerConfig,
    flags: StageFlags,
    *,
    channel: ReloadChannel | None = None,
    watcher: ChangeWatcher | None = None,
    transformer: CodeTransformer | None = None,
) -> Pipeline:
    """Build the request pipeline for a server instance.

    Args:
        config: Resolved server configuration
        flags: Stage flags derived from config
        channel: Reload channel, required when flags.needs_reload_channel
        watcher: Change watcher, required when config.watch
        transformer: Code transformer, required when flags.needs_transform

    Returns:
        The assembled pipeline

    Raises:
        ValueError: If a collaborator needed by an enabled stage is missing
    """
    stages: list[PipelineStage] = []

    for index, middleware in enumerate(config.custom_middlewares):
        name = getattr(middleware, "__name__", type(middleware).__name__)
        stages.append(PipelineStage(f"custom:{index}:{name}", middleware))

    stages.append(PipelineStage("etag", etag_stage))

    if flags.needs_reload_channel:
        if channel is None:
            raise ValueError("reload channel stage needs a ReloadChannel")
        # Without an HTML transform stage the channel injects its own client
        injector = None
        if not flags.needs_html_transform:
            injector = EntryDocumentInjector(config, reload_client_markup())
        stages.append(PipelineStage("reload_channel", ReloadChannelStage(channel, injector)))

    if config.watch:
        if watcher is None:
            raise ValueError("watch stage needs a ChangeWatcher")
        stages.append(PipelineStage("watch", WatchStage(watcher)))

    if flags.needs_transform:
        if transformer is None:
            raise ValueError("code transform stage needs a CodeTransformer")
        stages.append(PipelineStage("code_transform", CodeTransformStage(config, transformer)))

    if flags.needs_html_transform:
        stages.append(PipelineStage("html_transform", HtmlTransformStage(config, flags)))

    if flags.needs_history_fallback:
        if config.app_index is None or config.app_index_dir is None:
            raise ValueError("history fallback stage needs an app_index")
        stages.append(
            PipelineStage(
                "history_fallback",
                HistoryFallbackStage(config.root_dir, config.app_index, config.app_index_dir),
            )
        )

    pipeline = Pipeline(stages, StaticFileStage(config.root_dir))
    logger.debug(f"Pipeline: {' -> '.join(pipeline.stage_names + ('static',))}")
    return pipeline


__all__ = ["Pipeline", "PipelineStage", "assemble_pipeline"]
