"""Keepalive HTTP endpoint for hosts that expect a listening web service."""

import asyncio
import logging
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse

from .store import ConversationStore

logger = logging.getLogger("voicerelay.server")

BANNER = "Anna TG bot is running"


def create_app(store: ConversationStore) -> FastAPI:
    app = FastAPI(title="voicerelay", docs_url=None, redoc_url=None)

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return BANNER

    @app.get("/health")
    async def health() -> JSONResponse:
        """Liveness probe."""
        return JSONResponse({"status": "ok", "conversations": len(store)})

    return app


class HealthServer:
    """Runs uvicorn inside the current event loop.

    The listening socket is bound here rather than by uvicorn, which exits
    the process when the port is taken. A busy port only costs the
    keepalive endpoint; the bot keeps running.
    """

    def __init__(self, store: ConversationStore, host: str = "0.0.0.0", port: int = 3000):
        self.app = create_app(store)
        self.host = host
        self.port = port
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task] = None

    def _bind(self) -> Optional[socket.socket]:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            logger.warning(f"Keepalive disabled, cannot bind {self.host}:{self.port}: {e}")
            return None
        sock.set_inheritable(True)
        return sock

    async def _serve(self, sock: socket.socket):
        try:
            await self._server.serve(sockets=[sock])
        except (Exception, SystemExit) as e:
            logger.warning(f"Keepalive server ended with error: {type(e).__name__}: {e}")
        finally:
            sock.close()

    async def start(self):
        sock = self._bind()
        if sock is None:
            return
        self.port = sock.getsockname()[1]
        config = uvicorn.Config(self.app, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._serve(sock))
        logger.info(f"🌐 Keepalive on {self.host}:{self.port}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def stop(self):
        if not self._task:
            return
        self._server.should_exit = True
        await self._task
        self._task = None
        logger.info("Keepalive server stopped.")
