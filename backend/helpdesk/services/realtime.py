import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from helpdesk.core.config import settings
from helpdesk.core.crypto import DecryptionError, decrypt_message, encrypt_message
from helpdesk.metrics.prometheus import websocket_connections

logger = logging.getLogger(__name__)

# (user_id, ticket_id) -> may this user watch the ticket room
JoinCheck = Callable[[str, int], Awaitable[bool]]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class ClientConnection:
    websocket: WebSocket
    user_id: str
    ticket_id: Optional[int] = None


class WebSocketManager:
    """
    Tracks connected clients by client id. Each client belongs to one user and
    is subscribed to at most one ticket room at a time.
    """

    def __init__(self, passphrase: str):
        self.passphrase = passphrase
        self._clients: dict[str, ClientConnection] = {}

    @property
    def clients(self) -> dict[str, ClientConnection]:
        return self._clients

    def _new_client_id(self, user_id: str) -> str:
        ms = int(time.time() * 1000)
        while f"{user_id}-{ms}" in self._clients:
            ms += 1
        return f"{user_id}-{ms}"

    def connect(self, websocket: WebSocket, user_id: str, ticket_id: Optional[int] = None) -> str:
        client_id = self._new_client_id(user_id)
        self._clients[client_id] = ClientConnection(websocket=websocket, user_id=user_id, ticket_id=ticket_id)
        websocket_connections.inc()
        logger.info("WebSocket client connected", extra={"client_id": client_id, "ticket_id": ticket_id})
        return client_id

    def disconnect(self, client_id: str) -> None:
        if self._clients.pop(client_id, None) is not None:
            websocket_connections.dec()
            logger.info("WebSocket client disconnected", extra={"client_id": client_id})

    def encode(self, payload: dict[str, Any]) -> str:
        return encrypt_message(json.dumps(payload, default=str), self.passphrase)

    def decode(self, frame: str) -> dict[str, Any]:
        message = json.loads(decrypt_message(frame, self.passphrase))
        if not isinstance(message, dict):
            raise ValueError("frame must be a JSON object")
        return message

    async def _send(self, client_id: str, frame: str) -> bool:
        conn = self._clients.get(client_id)
        if conn is None:
            return False
        if conn.websocket.client_state != WebSocketState.CONNECTED:
            self.disconnect(client_id)
            return False
        try:
            await conn.websocket.send_text(frame)
            return True
        except Exception as e:
            logger.warning("WebSocket send failed, dropping client", extra={"client_id": client_id, "error": str(e)})
            self.disconnect(client_id)
            return False

    async def _fan_out(self, client_ids: list[str], payload: dict[str, Any]) -> int:
        if not client_ids:
            return 0
        frame = self.encode(payload)
        sent = 0
        for client_id in client_ids:
            if await self._send(client_id, frame):
                sent += 1
        return sent

    def _room(self, ticket_id: int) -> list[str]:
        return [cid for cid, c in self._clients.items() if c.ticket_id == ticket_id]

    async def broadcast_ticket_message(self, ticket_id: int, message: dict[str, Any]) -> int:
        payload = {"type": "new_message", "ticketId": ticket_id, "message": message, "timestamp": _now_iso()}
        return await self._fan_out(self._room(ticket_id), payload)

    async def broadcast_ticket_update(self, ticket_id: int, update: dict[str, Any]) -> int:
        payload = {"type": "ticket_update", "ticketId": ticket_id, "update": update, "timestamp": _now_iso()}
        return await self._fan_out(self._room(ticket_id), payload)

    async def notify_user(self, user_id: str, notification: dict[str, Any]) -> int:
        targets = [cid for cid, c in self._clients.items() if c.user_id == user_id]
        payload = {"type": "notification", "notification": notification, "timestamp": _now_iso()}
        return await self._fan_out(targets, payload)

    async def handle_message(self, client_id: str, message: dict[str, Any], can_join: Optional[JoinCheck] = None) -> None:
        conn = self._clients.get(client_id)
        if conn is None:
            return

        mtype = message.get("type")
        if mtype == "join_ticket":
            try:
                ticket_id = int(message.get("ticketId"))
            except (TypeError, ValueError):
                await self._send(client_id, self.encode({"type": "error", "message": "ticketId is required"}))
                return
            if can_join is not None and not await can_join(conn.user_id, ticket_id):
                await self._send(client_id, self.encode({"type": "error", "message": "Not allowed to join this ticket"}))
                return
            conn.ticket_id = ticket_id

        elif mtype == "leave_ticket":
            conn.ticket_id = None

        elif mtype == "ping":
            await self._send(client_id, self.encode({"type": "pong", "timestamp": _now_iso()}))

    async def handle_websocket(
        self,
        websocket: WebSocket,
        user_id: str,
        ticket_id: Optional[int] = None,
        can_join: Optional[JoinCheck] = None,
    ) -> None:
        await websocket.accept()
        client_id = self.connect(websocket, user_id, ticket_id)
        await self._send(client_id, self.encode({"type": "connected", "clientId": client_id, "timestamp": _now_iso()}))

        try:
            while True:
                event = await websocket.receive()
                if event["type"] == "websocket.disconnect":
                    break
                frame = event.get("text")
                if frame is None:
                    logger.warning("Ignoring binary WebSocket frame", extra={"client_id": client_id})
                    continue
                try:
                    message = self.decode(frame)
                except (DecryptionError, ValueError) as e:
                    logger.warning("Invalid or undecryptable WebSocket message", extra={"client_id": client_id, "error": str(e)})
                    continue
                await self.handle_message(client_id, message, can_join)
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(client_id)


manager = WebSocketManager(settings.chat_encryption_key)


def get_ws_manager() -> WebSocketManager:
    return manager
