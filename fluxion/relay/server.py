"""
Relay Server

Design Decision: Relay Framework
================================

Options Considered:
1. websockets.serve - Minimal, one more server library
2. FastAPI WebSocket routes - Same stack as the rest of the project,
   plus a JSON health endpoint for free
3. Raw asyncio TCP - Browsers can't speak it

Decision: FastAPI + uvicorn
- Browser clients of the web frontend connect to the bare URL,
  so the WebSocket route is mounted at ``/``
- ``/health`` reports room and connection counts without exposing
  room codes (the code is the only rendezvous secret)
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from .rooms import RoomRegistry
from ..config import Config

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Relay health response."""
    status: str
    rooms: int
    connections: int


def create_app(registry: Optional[RoomRegistry] = None) -> FastAPI:
    """
    Create the relay application.

    Args:
        registry: Room registry to use (a fresh one if not provided)

    Returns:
        FastAPI application
    """
    registry = registry or RoomRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Relay starting...")
        yield
        logger.info("Relay stopping...")

    app = FastAPI(
        title="Fluxion Relay",
        description="Room-keyed signaling relay for Fluxion peers",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.registry = registry

    @app.get("/health", response_model=HealthResponse, tags=["General"])
    async def health():
        """Relay liveness and load."""
        return HealthResponse(
            status="ok",
            rooms=registry.room_count,
            connections=registry.connection_count,
        )

    @app.websocket("/")
    async def signaling(websocket: WebSocket):
        """One signaling client."""
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        registry.attach(connection_id, websocket.send_text)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))

                raw = message.get("text")
                if raw is None:
                    raw = (message.get("bytes") or b"").decode("utf-8", errors="replace")

                try:
                    await registry.handle_message(connection_id, raw)
                except Exception as e:
                    logger.warning(f"Connection {connection_id[:8]}: message dropped: {e}")
        except WebSocketDisconnect:
            pass
        finally:
            await registry.detach(connection_id)

    return app


async def run_relay_server(config: Config):
    """
    Run the relay until cancelled.

    Args:
        config: Uses relay_host / relay_port
    """
    import uvicorn

    app = create_app()

    logger.info(
        f"Signaling server running on ws://{config.relay_host}:{config.relay_port}"
    )
    logger.info(
        f"Use this URL in clients: ws://{config.relay_host}:{config.relay_port}"
    )

    server_config = uvicorn.Config(
        app,
        host=config.relay_host,
        port=config.relay_port,
        log_level=config.log_level.lower(),
    )
    server = uvicorn.Server(server_config)
    await server.serve()
