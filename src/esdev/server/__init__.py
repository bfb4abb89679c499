"""esdev server - live reload coordination and application factory.

Provides the moving parts behind a running dev server:
- Watches served files for changes and debounces bursts of edits
- Keeps a registry of connected browser tabs
- Pushes reload and error notifications over a WebSocket

Example:
    Run a server from Python:

        >>> from esdev.config import create_config
        >>> from esdev.server.lifecycle import start_server
        >>>
        >>> config = create_config(root_dir="site", app_index="index.html", watch=True)
        >>> start_server(config)

    Or build the ASGI application and run it yourself:

        >>> from esdev.server.app import create_app
        >>> app = create_app(config)

Endpoints:
    WS  /__esdev__/reload            - Reload/error notifications
    GET /__esdev__/reload-client.js  - Script opening the reload channel
    *   /{path}                      - Everything else, through the pipeline
"""

from esdev.server.channel import ReloadChannel
from esdev.server.events import ChangeBatch, ChangeDebouncer, Notification
from esdev.server.reloader import ReloadWorker
from esdev.server.watcher import ChangeWatcher

__all__ = [
    # Events
    "ChangeBatch",
    "ChangeDebouncer",
    "Notification",
    # Watching
    "ChangeWatcher",
    # Channel
    "ReloadChannel",
    "ReloadWorker",
]
