"""Code transform stage.

Runs served module sources through the configured code transformer.
Failures propagate as `TransformError` so the reload channel stage can
answer the request and notify open browsers.
"""

from __future__ import annotations

import logging
from pathlib import Path

from starlette.requests import Request
from starlette.responses import Response

from esdev.config import CompatibilityMode, ServerConfig
from esdev.errors import TransformError
from esdev.server.watcher import matches_any
from esdev.stages.base import CallNext, read_text, replace_body, served_file
from esdev.transform.base import CodeTransformer, ModuleResolution

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".js", ".mjs")


class CodeTransformStage:
    """Transform module files on their way out.

    Attributes:
        transformer: The code transformer to invoke
        root_dir: Server root, used for exclusion glob matching
        compatibility_mode: Passed through to the transformer
        resolution: Module resolution options passed to the transformer
        extensions: File extensions that are transformed
        excludes: Globs of root-relative paths never transformed
    """

    def __init__(self, config: ServerConfig, transformer: CodeTransformer) -> None:
        self.transformer = transformer
        self.root_dir = config.root_dir
        self.compatibility_mode = config.compatibility_mode
        self.resolution = ModuleResolution(
            root_dir=config.root_dir,
            module_directories=config.module_directories,
            node_resolve=config.node_resolve,
        )
        self.extensions = DEFAULT_EXTENSIONS + tuple(config.extra_file_extensions)
        excludes = tuple(config.transform_exclude)
        if config.compatibility_mode == CompatibilityMode.MODERN:
            excludes += tuple(config.transform_modern_exclude)
        self.excludes = excludes

    def should_transform(self, path: Path) -> bool:
        if path.suffix.lower() not in self.extensions:
            return False
        try:
            relative = path.resolve().relative_to(self.root_dir).as_posix()
        except ValueError:
            return False
        return not matches_any(relative, self.excludes)

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        if response.status_code != 200:
            return response

        path = served_file(response)
        if path is None or not self.should_transform(path):
            return response

        try:
            source = await read_text(response)
        except UnicodeDecodeError as e:
            raise TransformError(f"File is not valid UTF-8: {e}", file_path=str(path)) from e
        if source is None:
            return response

        transformed = await self.transformer.transform(
            source,
            path,
            self.compatibility_mode,
            self.resolution,
        )
        logger.debug(f"Transformed {request.url.path}")
        return replace_body(response, transformed)


__all__ = ["CodeTransformStage"]
