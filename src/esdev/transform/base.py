"""Transformer protocol.

The server does not implement source-to-source compilation itself. It
calls a `CodeTransformer` for every module it serves and treats a raised
`TransformError` as a failure of that one request.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from esdev.config import CompatibilityMode


@dataclass(frozen=True)
class ModuleResolution:
    """Options controlling how import specifiers are resolved.

    Attributes:
        root_dir: Server root; resolved files must lie under it
        module_directories: Directory names searched for packages
        node_resolve: Whether bare specifiers are rewritten at all
    """

    root_dir: Path
    module_directories: tuple[str, ...] = ("node_modules",)
    node_resolve: bool = False


@runtime_checkable
class CodeTransformer(Protocol):
    """Anything that can transform one module's source text."""

    async def transform(
        self,
        source: str,
        file_path: Path,
        compatibility_mode: CompatibilityMode,
        resolution: ModuleResolution,
    ) -> str:
        """Return the transformed source.

        Raises:
            TransformError: If the source cannot be transformed
        """
        ...


class PassthroughTransformer:
    """Transformer that returns sources unchanged."""

    async def transform(
        self,
        source: str,
        file_path: Path,
        compatibility_mode: CompatibilityMode,
        resolution: ModuleResolution,
    ) -> str:
        return source


__all__ = ["CodeTransformer", "ModuleResolution", "PassthroughTransformer"]
