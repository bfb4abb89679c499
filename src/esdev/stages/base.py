"""Shared types and helpers for request pipeline stages.

A stage is an async callable taking the request and a `call_next`
continuation, the same contract as Starlette's ``BaseHTTPMiddleware``
dispatch functions, so user-supplied middlewares slot in unchanged:

    async def stage(request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        ...
        return response
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from starlette.requests import Request
from starlette.responses import FileResponse, Response

CallNext = Callable[[Request], Awaitable[Response]]
Stage = Callable[[Request, CallNext], Awaitable[Response]]
Handler = Callable[[Request], Awaitable[Response]]

# Headers that describe a body and go stale once the body is rewritten
_BODY_HEADERS = {"content-length", "etag", "last-modified"}


def with_path(request: Request, path: str) -> Request:
    """Return a copy of the request addressed to a different URL path."""
    scope = dict(request.scope)
    scope["path"] = path
    scope["raw_path"] = path.encode("utf-8")
    return Request(scope, request.receive)


class RewrittenResponse(Response):
    """A response whose body was rewritten from a file on disk.

    Keeps the source path so later stages can still tell which file the
    body came from.
    """

    def __init__(self, *args: Any, source_path: Path | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.source_path = source_path


def served_file(response: Response) -> Path | None:
    """Return the file behind a response, if it was served from disk."""
    if isinstance(response, FileResponse):
        return Path(response.path)
    if isinstance(response, RewrittenResponse):
        return response.source_path
    return None


def media_type_of(response: Response) -> str:
    """Return the bare media type of a response (no parameters)."""
    content_type = response.headers.get("content-type", "")
    return content_type.split(";", 1)[0].strip().lower()


async def read_text(response: Response) -> str | None:
    """Read a response body as text.

    Returns:
        The body, or None for streaming responses that cannot be re-read
    """
    if isinstance(response, FileResponse):
        path = Path(response.path)
        return await asyncio.to_thread(path.read_text, encoding="utf-8")
    body = getattr(response, "body", None)
    if body is None:
        return None
    return body.decode(response.charset or "utf-8")


def replace_body(response: Response, text: str) -> Response:
    """Build a response with the same status and headers but a new body."""
    headers = {
        key: value
        for key, value in response.headers.items()
        if key.lower() not in _BODY_HEADERS
    }
    return RewrittenResponse(
        content=text,
        status_code=response.status_code,
        headers=headers,
        media_type=response.media_type,
        source_path=served_file(response),
    )


__all__ = [
    "CallNext",
    "Stage",
    "Handler",
    "RewrittenResponse",
    "with_path",
    "served_file",
    "media_type_of",
    "read_text",
    "replace_body",
]
