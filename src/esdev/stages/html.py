"""HTML transform stage.

Injects the reload client and, in compatibility mode, polyfill and
module shim loaders into the entry document.
"""

from __future__ import annotations

import re
from pathlib import Path

from starlette.requests import Request
from starlette.responses import Response

from esdev.config import CompatibilityMode, ServerConfig, StageFlags
from esdev.paths import RELOAD_CLIENT_PATH, resolve_browser_path
from esdev.stages.base import CallNext, media_type_of, read_text, replace_body, served_file

# (package file under the first module directory, script attributes)
MODERN_SCRIPTS: tuple[tuple[str, str], ...] = (
    ("es-module-shims/dist/es-module-shims.js", "async"),
)

ALL_SCRIPTS: tuple[tuple[str, str], ...] = (
    ("core-js-bundle/minified.js", "nomodule"),
    ("regenerator-runtime/runtime.js", "nomodule"),
    ("@webcomponents/webcomponentsjs/webcomponents-loader.js", ""),
    ("systemjs/dist/s.min.js", "nomodule"),
    ("es-module-shims/dist/es-module-shims.js", "async"),
)

_HEAD_CLOSE = re.compile(r"</head\s*>", re.IGNORECASE)
_BODY_CLOSE = re.compile(r"</body\s*>", re.IGNORECASE)


def _script_tag(src: str, attributes: str = "") -> str:
    attrs = f" {attributes}" if attributes else ""
    return f'<script{attrs} src="{src}"></script>'


def compatibility_markup(mode: CompatibilityMode, module_directory: str = "node_modules") -> str:
    """Script tags loading the shims a compatibility mode needs."""
    if mode == CompatibilityMode.ALL:
        scripts = ALL_SCRIPTS
    elif mode == CompatibilityMode.MODERN:
        scripts = MODERN_SCRIPTS
    else:
        return ""
    base = "/" + module_directory.strip("/")
    return "".join(_script_tag(f"{base}/{path}", attrs) for path, attrs in scripts)


def reload_client_markup() -> str:
    """Script tag opening the reload channel."""
    return _script_tag(RELOAD_CLIENT_PATH)


def build_injection(config: ServerConfig, flags: StageFlags) -> str:
    """Markup injected into the entry document for a configuration."""
    parts = []
    if flags.needs_reload_channel:
        parts.append(reload_client_markup())
    if flags.needs_compatibility:
        module_directory = config.module_directories[0] if config.module_directories else "node_modules"
        parts.append(compatibility_markup(config.compatibility_mode, module_directory))
    return "".join(parts)


def inject(html: str, markup: str) -> str:
    """Insert markup before </head>, else before </body>, else at the end."""
    if not markup:
        return html
    for pattern in (_HEAD_CLOSE, _BODY_CLOSE):
        match = pattern.search(html)
        if match:
            return html[: match.start()] + markup + html[match.start() :]
    return html + markup


class EntryDocumentInjector:
    """Insert fixed markup into the entry document.

    Without an app_index every HTML document counts as an entry document.
    """

    def __init__(self, config: ServerConfig, markup: str) -> None:
        self.markup = markup
        self.entry_file: Path | None = None
        if config.app_index is not None:
            self.entry_file = resolve_browser_path(config.app_index, config.root_dir)

    def is_entry_document(self, response: Response) -> bool:
        if response.status_code != 200 or media_type_of(response) != "text/html":
            return False
        if self.entry_file is None:
            return True
        path = served_file(response)
        return path is not None and path.resolve() == self.entry_file

    async def apply(self, response: Response) -> Response:
        if not self.markup or not self.is_entry_document(response):
            return response

        html = await read_text(response)
        if html is None:
            return response
        return replace_body(response, inject(html, self.markup))


class HtmlTransformStage:
    """Rewrite the entry document on its way out."""

    def __init__(self, config: ServerConfig, flags: StageFlags) -> None:
        self.injector = EntryDocumentInjector(config, build_injection(config, flags))

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        return await self.injector.apply(response)


__all__ = [
    "EntryDocumentInjector",
    "HtmlTransformStage",
    "build_injection",
    "compatibility_markup",
    "inject",
    "reload_client_markup",
]
