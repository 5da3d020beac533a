"""
WebSocket generation session manager.

Tracks active browser connections and the generations each one has in
flight, keyed by the client-chosen ``ref``. Sends are serialized per
connection because several generations may stream over one socket.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from ai_bridge.orchestration.cancellation import CancellationToken

logger = logging.getLogger(__name__)


class _Session:
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.send_lock = asyncio.Lock()
        self.tokens: dict[str, CancellationToken] = {}
        self.tasks: set[asyncio.Task] = set()


class ConnectionManager:
    def __init__(self) -> None:
        self._sessions: dict[int, _Session] = {}

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._sessions[id(websocket)] = _Session(websocket)
        logger.info(
            "WebSocket connected. Active connections: %d", len(self._sessions)
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        """Forget the connection, cancelling whatever it still has in flight."""
        session = self._sessions.pop(id(websocket), None)
        if session is None:
            return
        for token in session.tokens.values():
            token.cancel("client disconnected")
        if session.tasks:
            await asyncio.gather(*session.tasks, return_exceptions=True)
        logger.info(
            "WebSocket disconnected. Active connections: %d", len(self._sessions)
        )

    async def send(self, websocket: WebSocket, message: dict[str, Any]) -> bool:
        """Send one JSON message. Returns False once the client is gone."""
        session = self._sessions.get(id(websocket))
        if session is None:
            return False
        async with session.send_lock:
            try:
                await websocket.send_json(message)
            except Exception:
                logger.warning("WebSocket send failed; dropping message")
                return False
        return True

    def start(
        self, websocket: WebSocket, ref: str, token: CancellationToken, task: asyncio.Task
    ) -> None:
        session = self._sessions[id(websocket)]
        session.tokens[ref] = token
        session.tasks.add(task)

        def _done(_: asyncio.Task) -> None:
            session.tasks.discard(task)
            if session.tokens.get(ref) is token:
                del session.tokens[ref]

        task.add_done_callback(_done)

    def is_active(self, websocket: WebSocket, ref: str) -> bool:
        session = self._sessions.get(id(websocket))
        return session is not None and ref in session.tokens

    def cancel(self, websocket: WebSocket, ref: str, reason: str = "cancelled by client") -> bool:
        session = self._sessions.get(id(websocket))
        token = session.tokens.get(ref) if session else None
        if token is None:
            return False
        token.cancel(reason)
        return True

    @property
    def connection_count(self) -> int:
        return len(self._sessions)

    @property
    def in_flight(self) -> int:
        return sum(len(s.tokens) for s in self._sessions.values())
