"""WebSocket feed pushing the dashboard payload to connected operators.

Clients receive the current payload on connect and then on every update
loop tick. Sending the text ``refresh`` asks for an immediate payload.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from aegis.dashboard.update_loop import build_payload

log = structlog.get_logger(__name__)

router = APIRouter()


class DashboardHub:
    """Set of live WebSocket clients with best-effort JSON broadcast."""

    def __init__(self) -> None:
        self.connections: set[WebSocket] = set()

    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        self.connections.add(ws)
        log.info("dashboard_ws_connected", total=len(self.connections))

    def disconnect(self, ws: WebSocket) -> None:
        self.connections.discard(ws)
        log.info("dashboard_ws_disconnected", total=len(self.connections))

    async def send(self, ws: WebSocket, payload: dict[str, Any]) -> bool:
        """Send to one client. A client that fails is dropped; returns False."""
        try:
            await ws.send_json(payload)
        except Exception:
            self.connections.discard(ws)
            log.warning("dashboard_ws_send_failed", remaining=len(self.connections))
            return False
        return True

    async def broadcast(self, payload: dict[str, Any]) -> int:
        """Send the payload to every client. Returns the number reached."""
        reached = 0
        for ws in list(self.connections):
            if await self.send(ws, payload):
                reached += 1
        return reached


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    hub: DashboardHub = websocket.app.state.hub
    await hub.connect(websocket)
    try:
        await hub.send(websocket, build_payload(websocket.app))
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "refresh":
                await hub.send(websocket, build_payload(websocket.app))
    except WebSocketDisconnect:
        hub.disconnect(websocket)
