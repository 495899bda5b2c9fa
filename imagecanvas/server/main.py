"""
FastAPI + Socket.IO server for the image canvas.

Start with:
    python -m imagecanvas.server.main

Or via uvicorn directly:
    uvicorn imagecanvas.server.main:socket_app --port 3000 --reload
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from imagecanvas.server.config import settings
from imagecanvas.server.events.socket_server import create_socket_app
from imagecanvas.server.routes.generation_routes import router as generation_router
from imagecanvas.server.routes.workspace_routes import router as workspace_router
from imagecanvas.server.state import get_state

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # write the last throttled snapshot before the process exits
    get_state().persister.flush()


app = FastAPI(title="ImageCanvas API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(workspace_router, prefix="/api")
app.include_router(generation_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Wrap with Socket.IO ASGI layer
# ---------------------------------------------------------------------------

# socket_app is the top-level ASGI app passed to uvicorn.
# Socket.IO connections are handled at the root; all other requests are
# forwarded to the inner FastAPI app.
socket_app = create_socket_app(app)

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "imagecanvas.server.main:socket_app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
