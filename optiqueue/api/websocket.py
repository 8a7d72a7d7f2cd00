"""
WebSocket connection manager for real-time job updates.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field

from fastapi import WebSocket, WebSocketDisconnect

from optiqueue.types.events import JobEvent, WebSocketMessage

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ConnectionInfo:
    """Information about a WebSocket connection."""

    websocket: WebSocket
    # Empty means every job
    subscribed_jobs: set[str] = field(default_factory=set)

    def wants(self, job_id: str) -> bool:
        """Check whether this connection should receive events for a job."""
        return not self.subscribed_jobs or job_id in self.subscribed_jobs


class WebSocketManager:
    """
    Manager for WebSocket connections.

    Fans scheduler lifecycle events out to connected clients. A client
    receives every event until it subscribes to specific job ids.
    """

    def __init__(self):
        """Initialize the WebSocket manager."""
        self._connections: list[ConnectionInfo] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket) -> ConnectionInfo:
        """
        Accept a new WebSocket connection.

        Args:
            websocket: The WebSocket connection.

        Returns:
            ConnectionInfo for the new connection.
        """
        await websocket.accept()

        connection = ConnectionInfo(websocket=websocket)

        async with self._lock:
            self._connections.append(connection)

        logger.info(
            "WebSocket connected",
            extra={"connections": len(self._connections)}
        )

        return connection

    async def disconnect(self, connection: ConnectionInfo) -> None:
        """
        Handle WebSocket disconnection.

        Args:
            connection: The connection to remove.
        """
        async with self._lock:
            if connection in self._connections:
                self._connections.remove(connection)

        logger.info(
            "WebSocket disconnected",
            extra={"connections": len(self._connections)}
        )

    def subscribe_to_job(self, connection: ConnectionInfo, job_id: str) -> None:
        """Restrict a connection to updates for the given job (cumulative)."""
        connection.subscribed_jobs.add(job_id)

    def unsubscribe_from_job(self, connection: ConnectionInfo, job_id: str) -> None:
        """Stop sending updates for a job to a connection."""
        connection.subscribed_jobs.discard(job_id)

    async def broadcast_job_event(self, event: JobEvent) -> None:
        """
        Broadcast a job event to interested connections.

        Registered as a scheduler subscriber for every event type.

        Args:
            event: The job event to broadcast.
        """
        async with self._lock:
            connections = [c for c in self._connections if c.wants(event.job_id)]

        if not connections:
            return

        message_json = WebSocketMessage.from_event(event).model_dump_json()

        disconnected = []
        for connection in connections:
            try:
                await connection.websocket.send_text(message_json)
            except Exception as e:
                logger.warning(
                    f"Failed to send WebSocket message: {e}",
                    extra={"job_id": event.job_id}
                )
                disconnected.append(connection)

        for connection in disconnected:
            await self.disconnect(connection)

    def get_connection_count(self) -> int:
        """Get the number of active connections."""
        return len(self._connections)


# Global WebSocket manager instance
_ws_manager: WebSocketManager | None = None


def get_ws_manager() -> WebSocketManager:
    """Get or create the WebSocket manager instance."""
    global _ws_manager
    if _ws_manager is None:
        _ws_manager = WebSocketManager()
    return _ws_manager


async def websocket_handler(websocket: WebSocket) -> None:
    """
    Handle a WebSocket connection for job updates.

    Clients may send ``{"action": "subscribe", "job_id": ...}``,
    ``{"action": "unsubscribe", "job_id": ...}`` or ``{"action": "ping"}``.

    Args:
        websocket: The WebSocket connection.
    """
    manager = get_ws_manager()
    connection = await manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
                action = message["action"]

                if action == "subscribe":
                    job_id = str(message["job_id"])
                    manager.subscribe_to_job(connection, job_id)
                    await websocket.send_json({"type": "subscribed", "job_id": job_id})

                elif action == "unsubscribe":
                    job_id = str(message["job_id"])
                    manager.unsubscribe_from_job(connection, job_id)
                    await websocket.send_json({"type": "unsubscribed", "job_id": job_id})

                elif action == "ping":
                    await websocket.send_json({"type": "pong"})

                else:
                    raise ValueError(f"unknown action {action!r}")

            except (json.JSONDecodeError, ValueError, KeyError, TypeError) as e:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Invalid message: {e}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(connection)
