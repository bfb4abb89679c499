"""End-to-end tests for the FastAPI application."""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request
from starlette.responses import Response

from esdev.config import create_config
from esdev.paths import RELOAD_CHANNEL_PATH, RELOAD_CLIENT_PATH
from esdev.server.app import ServerState, create_app
from esdev.server.events import Notification
from esdev.stages.base import CallNext


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """Create a single page application with one installed package."""
    (tmp_path / "index.html").write_text(
        "<!doctype html><html><head><title>App</title></head>"
        '<body><script type="module" src="/src/main.js"></script></body></html>'
    )
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.js").write_text("import { html } from 'lit';\nconsole.log(html);\n")
    (tmp_path / "src" / "broken.js").write_text("import 'does-not-exist';\n")
    lit = tmp_path / "node_modules" / "lit"
    lit.mkdir(parents=True)
    (lit / "package.json").write_text(json.dumps({"module": "index.js"}))
    (lit / "index.js").write_text("export const html = 1;\n")
    return tmp_path


def state_of(client: TestClient) -> ServerState:
    return client.app.state.server  # type: ignore[attr-defined]


# =============================================================================
# TestStaticServing
# =============================================================================


class TestStaticServing:
    """Tests for a server with no optional stages."""

    def test_serves_files_untouched(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site))

        with TestClient(app) as client:
            response = client.get("/src/main.js")

            assert response.status_code == 200
            assert "from 'lit'" in response.text
            assert response.headers["cache-control"] == "no-cache"

    def test_index_not_rewritten(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site))

        with TestClient(app) as client:
            response = client.get("/")

            assert RELOAD_CLIENT_PATH not in response.text

    def test_conditional_request(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site))

        with TestClient(app) as client:
            etag = client.get("/src/main.js").headers["etag"]
            response = client.get("/src/main.js", headers={"if-none-match": etag})

            assert response.status_code == 304

    def test_unknown_route_is_404_without_app_index(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site))

        with TestClient(app) as client:
            assert client.get("/nonexistent-route").status_code == 404

    def test_no_reload_channel(self, site: Path) -> None:
        """Test that the channel is absent when neither watch nor transforms are on."""
        app = create_app(create_config(root_dir=site))

        with TestClient(app) as client:
            assert state_of(client).channel is None
            assert client.get(RELOAD_CLIENT_PATH).status_code == 404

    def test_custom_middleware_runs_first(self, site: Path) -> None:
        async def stamp(request: Request, call_next: CallNext) -> Response:
            if request.url.path == "/api/ping":
                return Response("pong")
            response = await call_next(request)
            response.headers["x-stamp"] = "1"
            return response

        app = create_app(create_config(root_dir=site, custom_middlewares=[stamp]))

        with TestClient(app) as client:
            assert client.get("/api/ping").text == "pong"
            assert client.get("/src/main.js").headers["x-stamp"] == "1"


# =============================================================================
# TestHistoryFallback
# =============================================================================


class TestHistoryFallback:
    """Tests for single page application routing."""

    def test_unknown_route_serves_entry_document(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, app_index="index.html", watch=True))

        with TestClient(app) as client:
            response = client.get("/nonexistent-route")

            assert response.status_code == 200
            assert "<title>App</title>" in response.text
            assert RELOAD_CLIENT_PATH in response.text

    def test_existing_file_not_rewritten(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, app_index="index.html"))

        with TestClient(app) as client:
            response = client.get("/src/main.js", headers={"accept": "text/html"})

            assert "console.log" in response.text

    def test_missing_asset_still_404(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, app_index="index.html"))

        with TestClient(app) as client:
            assert client.get("/missing.js").status_code == 404


# =============================================================================
# TestTransforms
# =============================================================================


class TestTransforms:
    """Tests for code and HTML transforms."""

    def test_node_resolve_rewrites_imports(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, node_resolve=True))

        with TestClient(app) as client:
            response = client.get("/src/main.js")

            assert response.status_code == 200
            assert "from '/node_modules/lit/index.js'" in response.text

    def test_compatibility_markup_injected(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, app_index="index.html", compatibility_mode="all"))

        with TestClient(app) as client:
            response = client.get("/users/42")

            assert response.status_code == 200
            assert "core-js-bundle" in response.text
            assert RELOAD_CLIENT_PATH in response.text

    def test_reload_client_script(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, watch=True))

        with TestClient(app) as client:
            response = client.get(RELOAD_CLIENT_PATH)

            assert response.status_code == 200
            assert RELOAD_CHANNEL_PATH in response.text

    def test_transform_error_notifies_every_client(self, site: Path) -> None:
        """Test that a transform error fails the request and reaches all tabs."""
        app = create_app(create_config(root_dir=site, node_resolve=True))

        with TestClient(app) as client:
            with client.websocket_connect(RELOAD_CHANNEL_PATH) as first, client.websocket_connect(
                RELOAD_CHANNEL_PATH
            ) as second:
                assert state_of(client).channel.connection_count == 2  # type: ignore[union-attr]

                response = client.get("/src/broken.js")

                assert response.status_code == 500
                assert "does-not-exist" in response.text
                for websocket in (first, second):
                    message = websocket.receive_json()
                    assert message["type"] == "error"
                    assert "does-not-exist" in message["message"]

    def test_other_requests_unaffected_by_error(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, node_resolve=True))

        with TestClient(app) as client:
            assert client.get("/src/broken.js").status_code == 500
            assert client.get("/src/main.js").status_code == 200


# =============================================================================
# TestLifecycle
# =============================================================================


class TestLifecycle:
    """Tests for startup and shutdown of the watch machinery."""

    def test_watch_subscribes_served_files(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, watch=True))

        with TestClient(app) as client:
            watcher = state_of(client).watcher
            assert watcher is not None
            assert watcher.watched_count == 0

            client.get("/src/main.js")

            assert watcher.is_subscribed(site / "src" / "main.js")

    def test_transformed_files_are_watched(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, watch=True, node_resolve=True))

        with TestClient(app) as client:
            client.get("/src/main.js")

            assert state_of(client).watcher.is_subscribed(site / "src" / "main.js")  # type: ignore[union-attr]

    def test_shutdown_releases_resources(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, watch=True, watch_debounce=60_000))

        with TestClient(app) as client:
            state = state_of(client)
            with client.websocket_connect(RELOAD_CHANNEL_PATH):
                assert state.channel.connection_count == 1  # type: ignore[union-attr]
                client.get("/src/main.js")
                client.portal.call(state.watcher.on_change, site / "src" / "main.js")  # type: ignore[union-attr]
            assert state.watcher.is_running  # type: ignore[union-attr]

        assert not state.watcher.is_running  # type: ignore[union-attr]
        assert not state.debouncer.is_scheduled  # type: ignore[union-attr]
        assert state.debouncer.pending_count() == 0  # type: ignore[union-attr]
        assert state.channel.connection_count == 0  # type: ignore[union-attr]

    def test_editing_served_file_reloads_browser(self, site: Path) -> None:
        """Test the full chain from a file edit to a reload notification."""
        app = create_app(create_config(root_dir=site, watch=True, watch_debounce=50))

        with TestClient(app) as client:
            with client.websocket_connect(RELOAD_CHANNEL_PATH) as websocket:
                assert client.get("/src/main.js").status_code == 200
                time.sleep(0.2)

                (site / "src" / "main.js").write_text("console.log('edited');\n")

                assert websocket.receive_json() == {"type": "reload"}

    def test_editing_unrequested_file_is_ignored(self, site: Path) -> None:
        app = create_app(create_config(root_dir=site, watch=True, watch_debounce=50))

        with TestClient(app) as client:
            state = state_of(client)
            with client.websocket_connect(RELOAD_CHANNEL_PATH) as websocket:
                client.get("/src/main.js")
                time.sleep(0.2)

                (site / "src" / "broken.js").write_text("export {};\n")
                time.sleep(0.5)
                client.portal.call(state.channel.broadcast, Notification.error("marker"))  # type: ignore[union-attr]

                # A reload for broken.js would have arrived before the marker
                assert websocket.receive_json() == {"type": "error", "message": "marker"}


# =============================================================================
# TestShutdown
# =============================================================================


class TestShutdown:
    """Tests for cleanup when parts of the server have already failed."""

    @pytest.mark.asyncio
    async def test_cleanup_after_watcher_failure(self, site: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a dead watch task does not keep connections open."""

        def failing_awatch(*args: Any, **kwargs: Any) -> Any:
            raise OSError("inotify watch limit reached")

        monkeypatch.setattr("esdev.server.watcher.awatch", failing_awatch)
        state = ServerState(create_config(root_dir=site, watch=True))
        assert state.watcher is not None and state.worker is not None and state.channel is not None

        await state.start()
        while state.watcher.is_running:
            await asyncio.sleep(0.01)
        websocket = AsyncMock()
        await state.channel.connect(websocket)

        await state.stop()

        assert state.channel.connection_count == 0
        websocket.close.assert_awaited_once_with(code=1001)
        assert not state.worker.is_running
        assert state.watcher.watched_count == 0
