"""Tests for the reload channel registry, broadcast and reload worker."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from esdev.server.channel import ReloadChannel
from esdev.server.events import ChangeBatch, Notification
from esdev.server.reloader import ReloadWorker


class FakeWebSocket:
    """Stand-in for a FastAPI WebSocket that records what it is sent."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.accepted = False
        self.sent: list[dict[str, Any]] = []
        self.closed_with: int | None = None

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code


# =============================================================================
# TestReloadChannel
# =============================================================================


class TestReloadChannel:
    """Tests for ReloadChannel."""

    @pytest.mark.asyncio
    async def test_connect_registers_client(self) -> None:
        """Test that connecting accepts and registers the socket."""
        channel = ReloadChannel()
        websocket = FakeWebSocket()

        client_id = await channel.connect(websocket)  # type: ignore[arg-type]

        assert websocket.accepted
        assert channel.clients[client_id] is websocket
        assert channel.connection_count == 1

    @pytest.mark.asyncio
    async def test_connection_ids_are_unique(self) -> None:
        """Test that every connection gets its own opaque id."""
        channel = ReloadChannel()

        first = await channel.connect(FakeWebSocket())  # type: ignore[arg-type]
        second = await channel.connect(FakeWebSocket())  # type: ignore[arg-type]

        assert first != second

    @pytest.mark.asyncio
    async def test_disconnect_removes_client(self) -> None:
        """Test that disconnecting removes the registry entry."""
        channel = ReloadChannel()
        client_id = await channel.connect(FakeWebSocket())  # type: ignore[arg-type]

        channel.disconnect(client_id)
        channel.disconnect(client_id)

        assert channel.connection_count == 0

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_client(self) -> None:
        """Test that a broadcast is delivered once per client."""
        channel = ReloadChannel()
        sockets = [FakeWebSocket() for _ in range(3)]
        for websocket in sockets:
            await channel.connect(websocket)  # type: ignore[arg-type]

        delivered = await channel.broadcast(Notification.reload())

        assert delivered == 3
        for websocket in sockets:
            assert websocket.sent == [{"type": "reload"}]

    @pytest.mark.asyncio
    async def test_broadcast_with_no_clients(self) -> None:
        """Test that broadcasting to an empty registry is a no-op."""
        channel = ReloadChannel()

        assert await channel.broadcast(Notification.reload()) == 0

    @pytest.mark.asyncio
    async def test_stale_client_dropped_silently(self) -> None:
        """Test that a disconnected client does not raise and is removed."""
        channel = ReloadChannel()
        healthy = FakeWebSocket()
        stale = FakeWebSocket(fail=True)
        await channel.connect(healthy)  # type: ignore[arg-type]
        stale_id = await channel.connect(stale)  # type: ignore[arg-type]

        delivered = await channel.broadcast(Notification.error("boom"))

        assert delivered == 1
        assert stale_id not in channel.clients
        assert healthy.sent == [{"type": "error", "message": "boom"}]

    @pytest.mark.asyncio
    async def test_per_client_order_follows_broadcast_order(self) -> None:
        """Test that concurrent broadcasts arrive in the order they were issued."""
        channel = ReloadChannel()
        websocket = FakeWebSocket()
        await channel.connect(websocket)  # type: ignore[arg-type]

        await asyncio.gather(
            channel.broadcast(Notification.error("first")),
            channel.broadcast(Notification.error("second")),
            channel.broadcast(Notification.reload()),
        )

        assert websocket.sent == [
            {"type": "error", "message": "first"},
            {"type": "error", "message": "second"},
            {"type": "reload"},
        ]

    @pytest.mark.asyncio
    async def test_close_drops_everything(self) -> None:
        """Test that closing the channel closes sockets and empties the registry."""
        channel = ReloadChannel()
        sockets = [FakeWebSocket(), FakeWebSocket()]
        for websocket in sockets:
            await channel.connect(websocket)  # type: ignore[arg-type]

        await channel.close()

        assert channel.connection_count == 0
        assert all(websocket.closed_with == 1001 for websocket in sockets)


# =============================================================================
# TestReloadWorker
# =============================================================================


class TestReloadWorker:
    """Tests for ReloadWorker."""

    @pytest.mark.asyncio
    async def test_relevant_batch_reloads(self) -> None:
        """Test that a batch touching a relevant file broadcasts reload."""
        channel = ReloadChannel()
        websocket = FakeWebSocket()
        await channel.connect(websocket)  # type: ignore[arg-type]
        worker = ReloadWorker(asyncio.Queue(), channel)

        reloaded = await worker.process(ChangeBatch(paths=(Path("/app/main.js"),)))

        assert reloaded is True
        assert websocket.sent == [{"type": "reload"}]

    @pytest.mark.asyncio
    async def test_irrelevant_batch_ignored(self) -> None:
        """Test that a batch with no relevant files is silently ignored."""
        channel = ReloadChannel()
        websocket = FakeWebSocket()
        await channel.connect(websocket)  # type: ignore[arg-type]
        worker = ReloadWorker(asyncio.Queue(), channel, is_relevant=lambda path: False)

        reloaded = await worker.process(ChangeBatch(paths=(Path("/app/notes.txt"),)))

        assert reloaded is False
        assert websocket.sent == []

    @pytest.mark.asyncio
    async def test_worker_consumes_queue(self) -> None:
        """Test that the running worker picks batches off the queue."""
        channel = ReloadChannel()
        websocket = FakeWebSocket()
        await channel.connect(websocket)  # type: ignore[arg-type]
        queue: asyncio.Queue[ChangeBatch] = asyncio.Queue()
        worker = ReloadWorker(queue, channel)

        await worker.start()
        try:
            await queue.put(ChangeBatch(paths=(Path("/app/main.js"),)))
            await asyncio.wait_for(queue.join(), timeout=2.0)
        finally:
            await worker.stop()

        assert websocket.sent == [{"type": "reload"}]
