"""Bare module specifier resolution.

Browsers only understand relative and absolute import URLs. With
``node_resolve`` enabled, imports such as ``import { html } from 'lit'``
are rewritten to the file the package exposes under one of the module
directories, e.g. ``/node_modules/lit/index.js``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path

from esdev.config import CompatibilityMode, ServerConfig
from esdev.errors import TransformError
from esdev.paths import file_to_browser_path
from esdev.transform.base import CodeTransformer, ModuleResolution, PassthroughTransformer

logger = logging.getLogger(__name__)

# import x from 'a'; import 'a'; export * from 'a'; import('a')
IMPORT_PATTERN = re.compile(
    r"""(?P<prefix>
        \bimport\s*(?:[\w*{}\s,$]+?\s*from\s*)?
        |\bexport\s*(?:[\w*{}\s,$]+?\s*from\s*)
        |\bimport\s*\(\s*
    )
    (?P<quote>['"])(?P<specifier>[^'"\n]+)(?P=quote)""",
    re.VERBOSE,
)

# package.json fields tried in order for a package's entry point
ENTRY_FIELDS = ("module", "browser", "main")

SOURCE_EXTENSIONS = (".js", ".mjs")


def is_bare_specifier(specifier: str) -> bool:
    """True for specifiers that name a package rather than a URL or path."""
    if specifier.startswith(("/", "./", "../")):
        return False
    if "://" in specifier or specifier.startswith(("data:", "blob:")):
        return False
    return True


def split_specifier(specifier: str) -> tuple[str, str]:
    """Split ``@scope/pkg/sub/path.js`` into (``@scope/pkg``, ``sub/path.js``)."""
    parts = specifier.split("/")
    count = 2 if specifier.startswith("@") else 1
    return "/".join(parts[:count]), "/".join(parts[count:])


def _find_package_dir(package: str, importer: Path, resolution: ModuleResolution) -> Path | None:
    root = resolution.root_dir.resolve()
    directory = importer.parent.resolve()
    while True:
        for module_dir in resolution.module_directories:
            candidate = directory / module_dir / package
            if candidate.is_dir():
                return candidate
        if directory == root or root not in directory.parents:
            return None
        directory = directory.parent


def _resolve_file(base: Path) -> Path | None:
    if base.is_file():
        return base
    for ext in SOURCE_EXTENSIONS:
        candidate = base.with_name(base.name + ext)
        if candidate.is_file():
            return candidate
    index = base / "index.js"
    if index.is_file():
        return index
    return None


def _package_entry(package_dir: Path) -> str:
    manifest = package_dir / "package.json"
    if not manifest.is_file():
        return "index.js"
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Cannot read {manifest}: {e}")
        return "index.js"
    for field in ENTRY_FIELDS:
        value = data.get(field)
        if isinstance(value, str) and value:
            return value
    return "index.js"


def resolve_specifier(specifier: str, importer: Path, resolution: ModuleResolution) -> str:
    """Resolve a bare specifier to a browser-absolute path.

    Args:
        specifier: The bare import specifier
        importer: File containing the import
        resolution: Resolution options

    Returns:
        Browser-absolute path of the resolved module

    Raises:
        TransformError: If the package or file cannot be found
    """
    package, subpath = split_specifier(specifier)
    package_dir = _find_package_dir(package, importer, resolution)
    if package_dir is None:
        raise TransformError(f'Could not resolve import "{specifier}"', file_path=str(importer))

    target = _resolve_file(package_dir / (subpath or _package_entry(package_dir)))
    if target is None:
        raise TransformError(
            f'Could not resolve import "{specifier}" in {package_dir}',
            file_path=str(importer),
        )

    browser_path = file_to_browser_path(target, resolution.root_dir)
    if browser_path is None:
        raise TransformError(
            f'Import "{specifier}" resolves outside the server root',
            file_path=str(importer),
        )
    return browser_path


def rewrite_imports(source: str, file_path: Path, resolution: ModuleResolution) -> str:
    """Rewrite every bare import specifier in a module's source."""

    def replace(match: re.Match[str]) -> str:
        specifier = match.group("specifier")
        if not is_bare_specifier(specifier):
            return match.group(0)
        resolved = resolve_specifier(specifier, file_path, resolution)
        quote = match.group("quote")
        return f"{match.group('prefix')}{quote}{resolved}{quote}"

    return IMPORT_PATTERN.sub(replace, source)


class NodeResolveTransformer:
    """Transformer rewriting bare module specifiers to browser paths."""

    async def transform(
        self,
        source: str,
        file_path: Path,
        compatibility_mode: CompatibilityMode,
        resolution: ModuleResolution,
    ) -> str:
        if not resolution.node_resolve:
            return source
        return await asyncio.to_thread(rewrite_imports, source, file_path, resolution)


def default_transformer(config: ServerConfig) -> CodeTransformer:
    """Pick the bundled transformer for a configuration."""
    if config.node_resolve:
        return NodeResolveTransformer()
    return PassthroughTransformer()


__all__ = [
    "NodeResolveTransformer",
    "default_transformer",
    "is_bare_specifier",
    "split_specifier",
    "resolve_specifier",
    "rewrite_imports",
]
