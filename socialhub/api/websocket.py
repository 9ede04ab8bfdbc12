"""
WebSocket endpoint for the live message feed.

  WS /ws/messages

  Server -> Client events:
    new_message  — a message was published on the MessageBus

  Client -> Server events:
    ping         — answered with pong
"""
import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from socialhub.models.schemas import CanonicalMessage

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketManager:
    """
    Manages active WebSocket connections and relays bus messages to them.
    """

    def __init__(self):
        self._connections: list[WebSocket] = []
        # Strong references to in-flight broadcasts
        self._pending: set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket):
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        self._connections.append(websocket)
        logger.info(f"WebSocket connected (total: {len(self._connections)})")

    def disconnect(self, websocket: WebSocket):
        """Remove a disconnected WebSocket."""
        self._connections = [ws for ws in self._connections if ws is not websocket]
        logger.info(f"WebSocket disconnected (total: {len(self._connections)})")

    async def broadcast(self, event: str, data: dict):
        """Broadcast an event to every connection."""
        message = json.dumps({"event": event, "data": data})
        dead_connections = []

        for ws in list(self._connections):
            try:
                await ws.send_text(message)
            except Exception:
                dead_connections.append(ws)

        # Clean up dead connections
        for ws in dead_connections:
            self.disconnect(ws)

    def on_message(self, message: CanonicalMessage) -> None:
        """MessageBus subscriber: schedule a broadcast of the new message."""
        if not self._connections:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, live broadcast skipped")
            return

        task = loop.create_task(self.broadcast("new_message", message.model_dump(mode="json")))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def get_connection_count(self) -> int:
        return len(self._connections)


@router.websocket("/ws/messages")
async def messages_websocket(websocket: WebSocket):
    """Live feed of every message the hub receives."""
    ws_manager: WebSocketManager = websocket.app.state.ws_manager
    await ws_manager.connect(websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_text(
                    json.dumps({"event": "error", "data": {"message": "Invalid JSON"}})
                )
                continue

            if isinstance(data, dict) and data.get("event") == "ping":
                await websocket.send_text(json.dumps({"event": "pong"}))

    except WebSocketDisconnect:
        ws_manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        ws_manager.disconnect(websocket)
