from __future__ import annotations

from typing import Dict, List
import asyncio
import time

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.notifier import Notification

router = APIRouter()

HEARTBEAT_S = 15.0


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, session_id: str) -> None:
        await websocket.accept()
        self.active_connections.setdefault(session_id, []).append(websocket)

    def disconnect(self, websocket: WebSocket, session_id: str) -> None:
        conns = self.active_connections.get(session_id)
        if not conns:
            return
        if websocket in conns:
            conns.remove(websocket)
        if not conns:
            self.active_connections.pop(session_id, None)

    async def broadcast(self, session_id: str, data: dict) -> None:
        conns = list(self.active_connections.get(session_id, []))
        to_remove: List[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(data)
            except Exception:
                to_remove.append(ws)
        for ws in to_remove:
            self.disconnect(ws, session_id)


manager = ConnectionManager()


class WebSocketNotifier:
    """Pushes notifications to every socket listening on the notification's session."""

    def __init__(self, connections: ConnectionManager = manager) -> None:
        self.connections = connections

    async def notify(self, notification: Notification) -> None:
        if notification.session_id:
            await self.connections.broadcast(notification.session_id, notification.to_dict())


@router.websocket("/ws/sessions/{session_id}")
async def websocket_session(websocket: WebSocket, session_id: str):
    """Notifications and realtime analysis snapshots for one editor session.
    Sends a heartbeat so idle clients can tell the socket is alive.
    """
    await manager.connect(websocket, session_id)
    try:
        while True:
            await websocket.send_json({
                "type": "heartbeat",
                "sessionId": session_id,
                "ts": time.time(),
            })
            await asyncio.sleep(HEARTBEAT_S)
    except (WebSocketDisconnect, RuntimeError):
        # RuntimeError: sending on a socket the client already closed
        pass
    finally:
        manager.disconnect(websocket, session_id)
