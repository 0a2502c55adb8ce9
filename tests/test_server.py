"""Tests for the keepalive endpoint."""

import asyncio
import logging
import socket
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from voicerelay.server import BANNER, HealthServer, create_app
from voicerelay.store import ConversationStore


class TestHealthApp:

    def test_index_banner(self):
        client = TestClient(create_app(ConversationStore()))
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.text == BANNER

    def test_health_counts_conversations(self):
        store = ConversationStore()
        store.get(1)
        store.get(2)
        client = TestClient(create_app(store))
        assert client.get("/health").json() == {"status": "ok", "conversations": 2}


class TestHealthServer:

    @pytest.mark.asyncio
    async def test_busy_port_does_not_stop_process(self, caplog):
        holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        holder.bind(("127.0.0.1", 0))
        holder.listen(1)
        port = holder.getsockname()[1]
        try:
            server = HealthServer(ConversationStore(), host="127.0.0.1", port=port)
            with caplog.at_level(logging.WARNING, logger="voicerelay.server"):
                await server.start()
            assert not server.running
            assert "Keepalive disabled" in caplog.text
            await server.stop()
        finally:
            holder.close()

    @pytest.mark.asyncio
    async def test_serves_and_stops(self):
        server = HealthServer(ConversationStore(), host="127.0.0.1", port=0)
        await server.start()
        assert server.running
        assert server.port != 0

        reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
        writer.write(b"GET /health HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n")
        await writer.drain()
        data = await reader.read()
        writer.close()
        assert b"200 OK" in data

        await server.stop()
        assert not server.running

    @pytest.mark.asyncio
    async def test_serve_exit_is_contained(self, caplog):
        server = HealthServer(ConversationStore(), host="127.0.0.1", port=0)
        with patch("uvicorn.Server.serve", AsyncMock(side_effect=SystemExit(1))):
            await server.start()
            await asyncio.sleep(0)
            await server.stop()
        assert "Keepalive server ended with error: SystemExit" in caplog.text
