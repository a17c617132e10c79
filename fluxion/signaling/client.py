"""
Relay Client

The negotiator only needs four things from the relay: connect, send a
JSON envelope, receive the next raw frame (None once closed) and close.
RelayConnection is that contract; WebSocketRelayConnection implements it
with the websockets library.
"""

import asyncio
import json
import logging
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ..errors import RelayError

logger = logging.getLogger(__name__)


class RelayConnection:
    """Message-oriented connection to the relay."""

    async def connect(self):
        raise NotImplementedError

    async def send(self, message: dict) -> bool:
        """Send one envelope. Returns False if the connection is not open."""
        raise NotImplementedError

    async def receive(self) -> Optional[str]:
        """Next raw frame, or None once the connection is closed."""
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError

    @property
    def is_open(self) -> bool:
        raise NotImplementedError


class WebSocketRelayConnection(RelayConnection):
    """Relay connection over a WebSocket."""

    def __init__(self, url: str, open_timeout: float = 10.0):
        self.url = url
        self.open_timeout = open_timeout
        self._ws = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed

    async def connect(self):
        """
        Open the WebSocket.

        Raises:
            RelayError: if the relay is unreachable or rejects the handshake
        """
        logger.info(f"Connecting to signaling server at {self.url}...")
        try:
            self._ws = await websockets.connect(self.url, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, InvalidURI, InvalidHandshake) as e:
            raise RelayError(
                f"Failed to connect to signaling server at {self.url}: {e}"
            ) from e
        self._closed = False
        logger.debug("Signaling connection open")

    async def send(self, message: dict) -> bool:
        if not self.is_open:
            logger.warning(f"Relay not connected, dropping {message.get('type', 'candidate')} message")
            return False
        try:
            await self._ws.send(json.dumps(message))
            return True
        except ConnectionClosed:
            self._closed = True
            logger.warning("Relay connection closed while sending")
            return False

    async def receive(self) -> Optional[str]:
        if self._ws is None:
            return None
        try:
            frame = await self._ws.recv()
        except ConnectionClosed:
            self._closed = True
            return None
        if isinstance(frame, bytes):
            frame = frame.decode('utf-8', errors='replace')
        return frame

    async def close(self):
        if self._ws is not None and not self._closed:
            self._closed = True
            await self._ws.close()
            logger.debug("Signaling connection closed")
