"""Translation between filesystem paths and browser URL paths.

Every component that maps a request onto disk, or a file on disk back
to the URL it is served from, goes through these helpers:

    /home/me/app/src/main.js   <->   /src/main.js      (root_dir=/home/me/app)

Well-known URL paths used by the reload channel live here as well.
"""

from __future__ import annotations

import os
import posixpath
from pathlib import Path, PurePath
from urllib.parse import unquote

# Prefix reserved for URLs answered by the dev server itself
SERVER_PREFIX = "/__esdev__"

# WebSocket endpoint browsers connect to for reload/error notifications
RELOAD_CHANNEL_PATH = f"{SERVER_PREFIX}/reload"

# Script injected into the entry document to open the reload channel
RELOAD_CLIENT_PATH = f"{SERVER_PREFIX}/reload-client.js"


def to_browser_path(path: str | PurePath) -> str:
    """Convert a filesystem path to URL form by normalising separators.

    Args:
        path: Relative or absolute filesystem path

    Returns:
        The same path with ``/`` as the only separator
    """
    return str(path).replace(os.sep, "/").replace("\\", "/")


def normalize_app_index(app_index: str, root_dir: Path) -> str:
    """Normalise the configured entry document to a browser-absolute path.

    Args:
        app_index: Absolute filesystem path, root-relative path, or
            browser-absolute path to the entry HTML document
        root_dir: Absolute server root directory

    Returns:
        Browser-absolute path such as ``/index.html``
    """
    index_path = Path(app_index)
    if index_path.is_absolute() and index_path.is_relative_to(root_dir):
        return "/" + to_browser_path(index_path.relative_to(root_dir))
    if os.path.isabs(app_index) and not app_index.startswith("/"):
        # Drive-qualified path outside root_dir
        return "/" + to_browser_path(os.path.relpath(app_index, root_dir))
    if not app_index.startswith("/"):
        return "/" + to_browser_path(app_index)
    return to_browser_path(app_index)


def browser_dirname(browser_path: str) -> str:
    """Return everything before the last ``/`` of a browser path.

    ``/index.html`` yields ``""`` and ``/app/index.html`` yields ``/app``.
    """
    return browser_path[: browser_path.rfind("/")]


def file_to_browser_path(file_path: Path, root_dir: Path) -> str | None:
    """Map a file under root_dir to the URL path it is served from.

    Returns:
        Browser-absolute path, or None if the file lies outside root_dir
    """
    try:
        relative = file_path.resolve().relative_to(root_dir.resolve())
    except ValueError:
        return None
    return "/" + relative.as_posix()


def resolve_browser_path(url_path: str, root_dir: Path) -> Path | None:
    """Resolve a request URL path to a filesystem path under root_dir.

    Percent-escapes are decoded and ``.``/``..`` segments collapsed before
    joining, so the result can never escape root_dir.

    Args:
        url_path: Path component of the request URL
        root_dir: Absolute server root directory

    Returns:
        Absolute filesystem path, or None if the URL points outside root_dir
    """
    decoded = unquote(url_path)
    if "\x00" in decoded:
        return None
    normalized = posixpath.normpath("/" + decoded.lstrip("/"))
    candidate = (root_dir / normalized.lstrip("/")).resolve()
    root = root_dir.resolve()
    if candidate != root and not candidate.is_relative_to(root):
        return None
    return candidate


def is_within(url_path: str, directory: str) -> bool:
    """Check whether a browser path lies in the subtree of a browser directory.

    An empty directory denotes the server root and contains every path.
    """
    if not directory:
        return url_path.startswith("/")
    return url_path == directory or url_path.startswith(directory.rstrip("/") + "/")


__all__ = [
    "SERVER_PREFIX",
    "RELOAD_CHANNEL_PATH",
    "RELOAD_CLIENT_PATH",
    "to_browser_path",
    "normalize_app_index",
    "browser_dirname",
    "file_to_browser_path",
    "resolve_browser_path",
    "is_within",
]
