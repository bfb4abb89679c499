"""Conditional request stage.

Ensures successful GET/HEAD responses carry an ETag and answers a
matching ``If-None-Match`` with 304 Not Modified.
"""

from __future__ import annotations

import hashlib

from starlette.requests import Request
from starlette.responses import Response

from esdev.stages.base import CallNext

# Headers a 304 must repeat from the full response
_CACHE_HEADERS = ("etag", "cache-control", "last-modified", "vary")


def body_etag(body: bytes) -> str:
    """Weak validator derived from response content."""
    return f'W/"{hashlib.md5(body, usedforsecurity=False).hexdigest()}"'


def etag_matches(if_none_match: str, etag: str) -> bool:
    """Weak comparison of an If-None-Match header against an ETag."""
    if if_none_match.strip() == "*":
        return True
    wanted = etag.removeprefix("W/")
    return any(tag.strip().removeprefix("W/") == wanted for tag in if_none_match.split(","))


async def etag_stage(request: Request, call_next: CallNext) -> Response:
    response = await call_next(request)
    if request.method not in ("GET", "HEAD") or response.status_code != 200:
        return response

    etag = response.headers.get("etag")
    if etag is None:
        body = getattr(response, "body", None)
        if body is None:
            # Streaming body, nothing to hash
            return response
        etag = body_etag(body)
        response.headers["etag"] = etag

    if_none_match = request.headers.get("if-none-match")
    if if_none_match and etag_matches(if_none_match, etag):
        headers = {key: response.headers[key] for key in _CACHE_HEADERS if key in response.headers}
        return Response(status_code=304, headers=headers)

    return response


__all__ = ["etag_stage", "body_etag", "etag_matches"]
