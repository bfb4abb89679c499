"""Server configuration and pipeline stage flags.

`create_config` turns a flat set of options into an immutable
`ServerConfig`; `derive_stage_flags` decides once, from that config,
which request pipeline stages a server instance needs.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from esdev.errors import ConfigurationError
from esdev.paths import browser_dirname, normalize_app_index


class CompatibilityMode(str, Enum):
    """How much down-level support is applied for older browsers."""

    NONE = "none"
    MODERN = "modern"
    ALL = "all"

    @classmethod
    def values(cls) -> list[str]:
        return [mode.value for mode in cls]


class ServerConfig(BaseModel):
    """Complete configuration for one dev server instance.

    Attributes:
        port: Port to bind to
        hostname: Host to bind to
        root_dir: Absolute directory files are served from
        app_index: Browser-absolute path of the entry HTML document
        app_index_dir: Directory part of app_index ("" for the root)
        module_directories: Directories bare imports are resolved from
        node_resolve: Rewrite bare module specifiers to browser paths
        read_user_transform_config: Let the transformer pick up project config
        custom_transform_config: Explicit options handed to the transformer
        watch: Reload open browsers when served files change
        compatibility_mode: Down-level support for older browsers
        extra_file_extensions: Extensions transformed besides .js and .mjs
        transform_exclude: Globs of files never transformed
        transform_modern_exclude: Globs of files not transformed in modern mode
        watch_excludes: Globs of root-relative paths never watched
        watch_debounce: Quiet period in milliseconds before reporting changes
        custom_middlewares: Stages run before any built-in stage, in order
        open_browser: Open a browser tab once the server is listening
        open_path: Path to open instead of app_index
        log_startup: Print the startup banner
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, extra="forbid")

    port: int = Field(default=8080, ge=0, le=65535)
    hostname: str = "127.0.0.1"
    root_dir: Path = Field(default_factory=Path.cwd)
    app_index: str | None = None
    app_index_dir: str | None = None
    module_directories: tuple[str, ...] = ("node_modules",)
    node_resolve: bool = False
    read_user_transform_config: bool = False
    custom_transform_config: dict[str, Any] | None = None
    watch: bool = False
    compatibility_mode: CompatibilityMode = CompatibilityMode.NONE
    extra_file_extensions: tuple[str, ...] = ()
    transform_exclude: tuple[str, ...] = ()
    transform_modern_exclude: tuple[str, ...] = ()
    watch_excludes: tuple[str, ...] = ("node_modules/**",)
    watch_debounce: int = Field(default=1000, ge=0)
    custom_middlewares: tuple[Callable[..., Any], ...] = ()
    open_browser: bool = False
    open_path: str | None = None
    log_startup: bool = False

    @model_validator(mode="before")
    @classmethod
    def _resolve_paths(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        root_dir = Path(data.get("root_dir") or Path.cwd()).resolve()
        data["root_dir"] = root_dir

        app_index = data.get("app_index")
        if app_index:
            app_index = normalize_app_index(str(app_index), root_dir)
            data["app_index"] = app_index
            data["app_index_dir"] = browser_dirname(app_index)
        else:
            data["app_index"] = None
            data["app_index_dir"] = None

        data["extra_file_extensions"] = tuple(
            ext if ext.startswith(".") else f".{ext}"
            for ext in data.get("extra_file_extensions") or ()
        )
        return data


@dataclass(frozen=True)
class StageFlags:
    """Which optional pipeline stages a server instance runs."""

    needs_transform: bool
    needs_compatibility: bool
    needs_html_transform: bool
    needs_history_fallback: bool
    needs_reload_channel: bool


def create_config(**options: Any) -> ServerConfig:
    """Build a ServerConfig from any subset of options.

    Args:
        **options: ServerConfig fields; omitted fields take their defaults

    Returns:
        The resolved, immutable configuration

    Raises:
        ConfigurationError: If an option is unknown or invalid
    """
    mode = options.get("compatibility_mode")
    if mode is not None:
        raw_mode = mode.value if isinstance(mode, CompatibilityMode) else mode
        if raw_mode not in CompatibilityMode.values():
            allowed = ", ".join(CompatibilityMode.values())
            raise ConfigurationError(
                f"Unknown compatibility mode: {raw_mode}. Must be one of: {allowed}",
                compatibility_mode=raw_mode,
                allowed=CompatibilityMode.values(),
            )

    try:
        return ServerConfig(**options)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid server configuration: {e}") from e


def derive_stage_flags(config: ServerConfig) -> StageFlags:
    """Compute the stage flags for a configuration."""
    needs_transform = bool(
        config.custom_transform_config is not None
        or config.node_resolve
        or config.compatibility_mode in (CompatibilityMode.ALL, CompatibilityMode.MODERN)
        or config.read_user_transform_config
    )
    needs_compatibility = config.compatibility_mode != CompatibilityMode.NONE
    return StageFlags(
        needs_transform=needs_transform,
        needs_compatibility=needs_compatibility,
        needs_html_transform=needs_transform or needs_compatibility,
        needs_history_fallback=config.app_index is not None,
        needs_reload_channel=config.watch or needs_transform,
    )


class ServerSettings(BaseSettings):
    """Environment overrides for command line defaults (ESDEV_PORT etc.)."""

    model_config = SettingsConfigDict(
        env_prefix="ESDEV_",
        extra="ignore",
    )

    port: int = 8080
    hostname: str = "127.0.0.1"
    watch_debounce: int = 1000


__all__ = [
    "CompatibilityMode",
    "ServerConfig",
    "StageFlags",
    "ServerSettings",
    "create_config",
    "derive_stage_flags",
]
