from fastapi import WebSocket
from typing import List
import asyncio
import logging

from savanna.models.dc_models import SnapshotModel, TimerModel

SEND_TIMEOUT_SECONDS = 5.0


class ConnectionManager:
    """Every connected viewer watches the one game, so there is a single channel."""

    def __init__(self, send_timeout: float = SEND_TIMEOUT_SECONDS):
        self.active_connections: List[WebSocket] = []
        self.send_timeout = send_timeout

    async def connect(self, websocket: WebSocket):
        """Accepts a websocket and registers it for broadcasts

        Args:
            websocket (WebSocket): Viewer connection
        """
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        """Unregisters a websocket

        Args:
            websocket (WebSocket): Viewer connection
        """
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        await websocket.send_json(message)

    async def _send(self, connection: WebSocket, message: dict) -> bool:
        try:
            await asyncio.wait_for(connection.send_json(message), timeout=self.send_timeout)
            return True
        except Exception as e:
            logging.warning(f"Dropping websocket after failed send: {e!r}")
            self.disconnect(connection)
            return False

    async def broadcast(self, message: dict) -> int:
        """Sends message to every viewer at once; slow or dead sockets are dropped

        Returns:
            int: Number of sockets that received the message
        """
        connections = list(self.active_connections)
        delivered = await asyncio.gather(*(self._send(c, message) for c in connections))
        return sum(delivered)

    async def broadcast_snapshot(self, snapshot: SnapshotModel) -> int:
        logging.debug(f"Broadcasting snapshot version {snapshot.version}")
        return await self.broadcast(
            {"type": "STATE_SNAPSHOT", "payload": snapshot.model_dump(mode="json")}
        )

    async def broadcast_timer(self, timer: TimerModel) -> int:
        return await self.broadcast(
            {"type": "TIMER_UPDATE", "payload": timer.model_dump(mode="json")}
        )
