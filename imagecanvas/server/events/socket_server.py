"""
Socket.IO server.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
from logging import getLogger
from typing import Any, Dict

import socketio

from .workspace_emitter import global_emitter

logger = getLogger(__name__)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)


def _on_event(event: Dict[str, Any]) -> None:
    """
    Called synchronously by WorkspaceEmitter.fire().
    The emit is scheduled on the running event loop; outside one there is
    no connected client to send to.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    loop.create_task(sio.emit("workspace", event))


global_emitter.on_event(_on_event)


@sio.event
async def connect(sid: str, environ: dict) -> None:
    logger.debug(f"Client connected {sid}")


@sio.event
async def disconnect(sid: str) -> None:
    logger.debug(f"Client disconnected {sid}")


def create_socket_app(fastapi_app: Any) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
