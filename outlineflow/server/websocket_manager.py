"""
WebSocket Manager - Push notifications to the editor and canvas clients.

Clients never receive flowchart data over the socket; they get small events
and re-fetch GET /api/flowchart:
- flowchart_updated: anything changed
- scroll_to_heading: a heading-linked shape was clicked
"""
import asyncio
from typing import Any, Optional

from fastapi import WebSocket

from ..logging import get_logger

logger = get_logger(__name__)


def event(event_type: str, **payload: Any) -> dict:
    """Build a wire event."""
    return {"type": event_type, **payload}


class WebSocketManager:
    """Registry of open sockets with fan-out sends."""

    def __init__(self):
        self._clients: set[WebSocket] = set()
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket):
        """Accept a socket and start sending it events."""
        await websocket.accept()
        async with self._lock:
            self._clients.add(websocket)
        logger.info("WebSocket connected (%d open)", self.connection_count)

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self._clients.discard(websocket)
        logger.info("WebSocket disconnected (%d open)", self.connection_count)

    async def send(self, websocket: WebSocket, message: dict):
        """Reply to a single client."""
        await websocket.send_json(message)

    async def broadcast(self, message: dict):
        """Send to every client; clients whose send fails are forgotten."""
        async with self._lock:
            clients = list(self._clients)
        if not clients:
            return

        dead = []
        for websocket in clients:
            try:
                await websocket.send_json(message)
            except Exception:
                dead.append(websocket)

        if dead:
            logger.debug("Dropping %d unreachable WebSocket client(s)", len(dead))
            async with self._lock:
                self._clients.difference_update(dead)

    async def notify_flowchart_updated(self, file_path: Optional[str] = None):
        await self.broadcast(event("flowchart_updated", file_path=file_path))

    async def notify_heading_request(self, heading_id: str):
        """Ask the editor to scroll to a heading."""
        await self.broadcast(event("scroll_to_heading", heading_id=heading_id))


ws_manager = WebSocketManager()
