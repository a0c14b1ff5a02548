from typing import Set
from fastapi import WebSocket
import asyncio
import json
import logging

from dataroom.core.events import WorkspaceEvent

logger = logging.getLogger(__name__)


class EventBus:
    def __init__(self):
        self.connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.connections.add(websocket)

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self.connections.discard(websocket)

    async def publish(self, event: WorkspaceEvent):
        """Fan a coordinator event out to every connected client."""
        await self.broadcast(event.model_dump(mode="json"))

    async def broadcast(self, event: dict):
        """Broadcast event to all connected clients."""
        message = json.dumps(event, default=str)
        disconnected = set()

        for ws in self.connections.copy():
            try:
                await ws.send_text(message)
            except Exception:
                disconnected.add(ws)

        if disconnected:
            logger.debug("Dropping %d closed websocket(s)", len(disconnected))
            async with self._lock:
                self.connections -= disconnected


# Singleton instance
event_bus = EventBus()
