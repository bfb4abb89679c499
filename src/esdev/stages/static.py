"""Terminal stage: serve files from the root directory."""

from __future__ import annotations

import asyncio
import logging
import os
import stat
from pathlib import Path

from starlette.requests import Request
from starlette.responses import FileResponse, PlainTextResponse, Response

from esdev.paths import resolve_browser_path

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"


def _stat_file(path: Path) -> tuple[Path, os.stat_result] | None:
    try:
        result = os.stat(path)
    except OSError:
        return None
    if stat.S_ISDIR(result.st_mode):
        return _stat_file(path / INDEX_FILE) if path.name != INDEX_FILE else None
    if not stat.S_ISREG(result.st_mode):
        return None
    return path, result


async def lookup_file(url_path: str, root_dir: Path) -> tuple[Path, os.stat_result] | None:
    """Find the file a URL path maps to (directories map to their index.html).

    Returns:
        (path, stat result), or None if nothing servable exists
    """
    path = resolve_browser_path(url_path, root_dir)
    if path is None:
        return None
    return await asyncio.to_thread(_stat_file, path)


class StaticFileStage:
    """Serve GET/HEAD requests from root_dir; everything else is a 404."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = root_dir

    async def __call__(self, request: Request) -> Response:
        if request.method not in ("GET", "HEAD"):
            return PlainTextResponse("Not Found", status_code=404)

        found = await lookup_file(request.url.path, self.root_dir)
        if found is None:
            logger.debug(f"Not found: {request.url.path}")
            return PlainTextResponse("Not Found", status_code=404)

        path, stat_result = found
        return FileResponse(
            path,
            stat_result=stat_result,
            headers={"cache-control": "no-cache"},
        )


__all__ = ["StaticFileStage", "lookup_file", "INDEX_FILE"]
