"""
FastAPI Application for Payroll Sync.

Serves:
- GET /          the payroll page
- GET /healthz   liveness plus the active storage backend
- WS  /ws        live state synchronization
- everything else from the static root
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from payroll_sync import __version__
from payroll_sync.api.sync_hub import SyncHub
from payroll_sync.config import SyncConfig
from payroll_sync.core.export import start_export
from payroll_sync.core.state import StateStore
from payroll_sync.core.storage import select_backend
from payroll_sync.logging_config import ConnectionContext

logger = logging.getLogger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================


def _build_lifespan(config: SyncConfig):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Select storage, load state, start export; tear down in reverse."""
        logger.info(f"Starting Payroll Sync {__version__}: {config.describe()}")

        # Raises (and aborts startup) when STORAGE_MODE=postgres cannot be honoured
        selection = await select_backend(config)

        store = StateStore(selection.backend, selection.initial_state)
        hub = SyncHub(store)
        app.state.store = store
        app.state.hub = hub

        export = start_export(config.export, store)
        app.state.export = export

        logger.info(f"Payroll Sync ready on http://{config.host}:{config.port} (storage: {store.backend_name})")

        yield

        logger.info("Shutting down Payroll Sync...")
        if export is not None:
            await export.shutdown()
        await selection.backend.close()

    return lifespan


# =============================================================================
# Application Factory
# =============================================================================


def create_app(config: Optional[SyncConfig] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or SyncConfig.from_env()

    app = FastAPI(
        title="Payroll Sync",
        description="Real-time shared payroll schedule",
        version=__version__,
        lifespan=_build_lifespan(config),
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", include_in_schema=False)
    async def index():
        if not config.index_file.is_file():
            return JSONResponse({"detail": "Not Found"}, status_code=404)
        return FileResponse(config.index_file)

    @app.get("/healthz")
    async def healthz(request: Request):
        store: StateStore = request.app.state.store
        return {"ok": True, "storage": store.backend_name}

    @app.websocket("/ws")
    async def sync_socket(websocket: WebSocket):
        await serve_connection(websocket, websocket.app.state.hub)

    # The static mount below matches every path but only speaks HTTP
    @app.websocket("/{path:path}")
    async def unknown_socket(websocket: WebSocket, path: str):
        logger.debug(f"Rejecting websocket on unknown path /{path}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)

    if config.static_root.is_dir():
        app.mount("/", StaticFiles(directory=config.static_root), name="static")
    else:
        logger.warning(f"Static root {config.static_root} does not exist; static assets disabled")

    return app


async def serve_connection(websocket: WebSocket, hub: SyncHub) -> None:
    """Run one client's session: register, pump outbound, dispatch inbound."""
    await websocket.accept()
    client = hub.register(websocket)
    writer = asyncio.create_task(hub.pump(client))

    with ConnectionContext(client.id):
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    logger.debug("Dropping binary frame")
                    continue
                await hub.handle_raw(client.id, raw)
        except WebSocketDisconnect:
            pass
        finally:
            hub.unregister(client.id)
            writer.cancel()
            try:
                await writer
            except asyncio.CancelledError:
                pass
