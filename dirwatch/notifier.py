"""WebSocket channel that tells served pages to reload."""
from __future__ import annotations

import logging
from typing import Optional, Set

from aiohttp import WSCloseCode, WSMsgType, web

logger = logging.getLogger(__name__)

RELOAD_MESSAGE = "reload"


class ReloadNotifier:
    """Keeps the set of connected pages and signals them on :meth:`broadcast`.

    There is no replay: a page that connects after a broadcast waits for the
    next one.
    """

    def __init__(self, heartbeat: float = 30.0):
        self._clients: Set[web.WebSocketResponse] = set()
        self._heartbeat = heartbeat

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def handle(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=self._heartbeat)
        await ws.prepare(request)
        self._clients.add(ws)
        logger.debug("Reload client connected: %s", request.remote)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    break
        finally:
            self._clients.discard(ws)
            logger.debug("Reload client disconnected: %s", request.remote)
        return ws

    async def broadcast(self) -> int:
        sent = 0
        for ws in list(self._clients):
            if ws.closed:
                self._clients.discard(ws)
                continue
            try:
                await ws.send_str(RELOAD_MESSAGE)
            except ConnectionResetError:
                self._clients.discard(ws)
                continue
            sent += 1
        logger.info("Reload sent to %d client(s)", sent)
        return sent

    async def close(self, app: Optional[web.Application] = None) -> None:
        for ws in list(self._clients):
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
        self._clients.clear()
