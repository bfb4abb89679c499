"""esdev CLI - development server for unbundled ES-module projects."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

# Load .env file before reading environment overrides
load_dotenv()

import click  # noqa: E402

from esdev import __version__  # noqa: E402
from esdev.config import CompatibilityMode, ServerSettings  # noqa: E402

VerbosityLevel = Literal["quiet", "normal", "verbose"]

_settings = ServerSettings()


@click.command("esdev")
@click.argument(
    "root_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.option("--port", "-p", type=int, default=_settings.port, show_default=True, help="Port to bind to")
@click.option("--hostname", "-h", default=_settings.hostname, show_default=True, help="Host to bind to")
@click.option("--app-index", "-a", default=None, help="Entry HTML document for history API fallback")
@click.option(
    "--module-dirs",
    "module_directories",
    multiple=True,
    default=("node_modules",),
    show_default=True,
    help="Directories to resolve bare imports from (repeatable)",
)
@click.option("--node-resolve", "-n", is_flag=True, help="Resolve bare import specifiers")
@click.option("--watch", "-w", is_flag=True, help="Reload the browser when served files change")
@click.option(
    "--watch-debounce",
    type=int,
    default=_settings.watch_debounce,
    show_default=True,
    help="Quiet period in milliseconds before reloading",
)
@click.option("--watch-exclude", "watch_excludes", multiple=True, help="Globs never watched (repeatable)")
@click.option(
    "--compatibility",
    "-c",
    "compatibility_mode",
    type=click.Choice(CompatibilityMode.values()),
    default=CompatibilityMode.NONE.value,
    show_default=True,
    help="Compatibility with older browsers",
)
@click.option("--read-user-config", is_flag=True, help="Let the transformer read project transform config")
@click.option("--extension", "extra_file_extensions", multiple=True, help="Extra extensions to transform (repeatable)")
@click.option("--exclude", "transform_exclude", multiple=True, help="Globs never transformed (repeatable)")
@click.option("--modern-exclude", "transform_modern_exclude", multiple=True, help="Globs not transformed in modern mode")
@click.option("--open", "-o", "open_browser", is_flag=True, help="Open the browser after starting")
@click.option("--open-path", default=None, help="Path to open instead of the app index")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output")
@click.version_option(version=__version__, prog_name="esdev")
def cli(
    root_dir: Path,
    port: int,
    hostname: str,
    app_index: str | None,
    module_directories: tuple[str, ...],
    node_resolve: bool,
    watch: bool,
    watch_debounce: int,
    watch_excludes: tuple[str, ...],
    compatibility_mode: str,
    read_user_config: bool,
    extra_file_extensions: tuple[str, ...],
    transform_exclude: tuple[str, ...],
    transform_modern_exclude: tuple[str, ...],
    open_browser: bool,
    open_path: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Serve ROOT_DIR for development.

    \b
    Examples:
        esdev                          # Serve the current directory
        esdev site -a index.html -w    # SPA with live reload
        esdev -n -c modern             # Resolve bare imports, shim modules
    """
    from esdev.config import create_config
    from esdev.errors import DevServerError
    from esdev.logging import print_error, setup_logging
    from esdev.server.lifecycle import start_server

    verbosity: VerbosityLevel = "quiet" if quiet else "verbose" if verbose else "normal"
    setup_logging(verbosity)

    options = {
        "port": port,
        "hostname": hostname,
        "root_dir": root_dir,
        "app_index": app_index,
        "module_directories": module_directories,
        "node_resolve": node_resolve,
        "watch": watch,
        "watch_debounce": watch_debounce,
        "compatibility_mode": compatibility_mode,
        "read_user_transform_config": read_user_config,
        "extra_file_extensions": extra_file_extensions,
        "transform_exclude": transform_exclude,
        "transform_modern_exclude": transform_modern_exclude,
        "open_browser": open_browser,
        "open_path": open_path,
        "log_startup": not quiet,
    }
    if watch_excludes:
        options["watch_excludes"] = watch_excludes

    try:
        config = create_config(**options)
    except DevServerError as e:
        print_error(e.message)
        raise SystemExit(e.exit_code) from e

    log_level = {"quiet": "error", "normal": "info", "verbose": "debug"}[verbosity]
    start_server(config, log_level=log_level)


def main() -> None:
    """Entry point for the CLI."""
    import sys

    try:
        cli()
    except KeyboardInterrupt:
        # Clean exit on Ctrl+C
        sys.exit(130)


if __name__ == "__main__":
    main()
