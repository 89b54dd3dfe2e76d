"""Client connection adapters.

A Turn talks to its client through ``read_message``, ``write_message`` and
``close``. The adapters below wrap the two WebSocket stacks used here (the
FastAPI server socket and a ``websockets`` client connection) and turn their
transport failures into ConnectionClosed.
"""

from __future__ import annotations

import enum

import websockets
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from .errors import ConnectionClosed


class MessageType(enum.Enum):
    TEXT = "text"
    BINARY = "binary"


class Connection:
    async def read_message(self) -> tuple[MessageType, bytes]:
        raise NotImplementedError

    async def write_message(self, kind: MessageType, data: bytes) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class StarletteConnection(Connection):
    """Server side of a browser WebSocket accepted by FastAPI."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket

    async def read_message(self) -> tuple[MessageType, bytes]:
        try:
            msg = await self._ws.receive()
        except (RuntimeError, WebSocketDisconnect) as e:
            raise ConnectionClosed(str(e) or "WebSocket disconnected") from e

        if msg.get("type") == "websocket.disconnect":
            raise ConnectionClosed(f"client disconnected (code {msg.get('code')})")

        if msg.get("bytes") is not None:
            return MessageType.BINARY, msg["bytes"]
        return MessageType.TEXT, (msg.get("text") or "").encode("utf-8")

    async def write_message(self, kind: MessageType, data: bytes) -> None:
        try:
            if kind is MessageType.BINARY:
                await self._ws.send_bytes(data)
            else:
                await self._ws.send_text(data.decode("utf-8", errors="replace"))
        except (RuntimeError, OSError, WebSocketDisconnect) as e:
            raise ConnectionClosed(str(e) or "WebSocket disconnected") from e

    async def close(self) -> None:
        if (
            self._ws.application_state == WebSocketState.DISCONNECTED
            or self._ws.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self._ws.close()
        except (RuntimeError, OSError, WebSocketDisconnect) as e:
            raise ConnectionClosed(f"WebSocket close failed: {e}") from e


class WebsocketsConnection(Connection):
    """A connection made with the ``websockets`` library."""

    def __init__(self, ws: websockets.ClientConnection) -> None:
        self._ws = ws

    async def read_message(self) -> tuple[MessageType, bytes]:
        try:
            message = await self._ws.recv()
        except websockets.ConnectionClosed as e:
            raise ConnectionClosed(str(e)) from e
        if isinstance(message, str):
            return MessageType.TEXT, message.encode("utf-8")
        return MessageType.BINARY, message

    async def write_message(self, kind: MessageType, data: bytes) -> None:
        try:
            if kind is MessageType.BINARY:
                await self._ws.send(data)
            else:
                await self._ws.send(data.decode("utf-8", errors="replace"))
        except websockets.ConnectionClosed as e:
            raise ConnectionClosed(str(e)) from e

    async def close(self) -> None:
        await self._ws.close()
