"""Running a dev server: bind, announce, open the browser.

Handles starting the uvicorn server for a configuration and the
niceties around it (startup banner, browser tab).
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from typing import TYPE_CHECKING

from esdev.config import ServerConfig, derive_stage_flags
from esdev.logging import print_banner

if TYPE_CHECKING:
    from esdev.transform.base import CodeTransformer

logger = logging.getLogger(__name__)

# Delay before opening the browser, so the socket is listening
OPEN_BROWSER_DELAY = 0.5


def server_url(config: ServerConfig) -> str:
    """Base URL the server is reachable at."""
    return f"http://{config.hostname}:{config.port}"


def open_url(config: ServerConfig) -> str:
    """URL opened in the browser: open_path, else app_index, else the root."""
    path = config.open_path or config.app_index or "/"
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{server_url(config)}{path}"


def startup_details(config: ServerConfig) -> dict[str, str]:
    """Active options worth showing in the startup banner."""
    flags = derive_stage_flags(config)
    details: dict[str, str] = {}
    if config.app_index:
        details["App index"] = config.app_index
    if config.watch:
        details["Watch"] = f"on ({config.watch_debounce}ms debounce)"
    if config.node_resolve:
        details["Node resolve"] = "on"
    if flags.needs_compatibility:
        details["Compatibility"] = config.compatibility_mode.value
    return details


def announce(config: ServerConfig) -> None:
    """Print the banner and open the browser, as configured."""
    if config.log_startup:
        print_banner(server_url(config), str(config.root_dir), startup_details(config))

    if config.open_browser:
        url = open_url(config)
        timer = threading.Timer(OPEN_BROWSER_DELAY, webbrowser.open, args=(url,))
        timer.daemon = True
        timer.start()
        logger.debug(f"Opening {url}")


def start_server(
    config: ServerConfig,
    transformer: CodeTransformer | None = None,
    log_level: str = "info",
) -> None:
    """Run the server in the foreground until interrupted.

    Args:
        config: Resolved server configuration
        transformer: Optional code transformer override
        log_level: uvicorn log level
    """
    import uvicorn

    from esdev.server.app import create_app

    app = create_app(config, transformer)
    announce(config)
    uvicorn.run(
        app,
        host=config.hostname,
        port=config.port,
        log_level=log_level,
    )


__all__ = ["start_server", "announce", "server_url", "open_url"]
