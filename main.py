# ============================================================================
# COLLECTIONS ADMIN - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Core - FastAPI application entry point
# PURPOSE: Collections admin API with store, queue and core-admin wiring
# CREATED: 18 OCT 2026
# ============================================================================
"""
Collections Admin Main Application

FastAPI application that:
1. Provides the HTTP collections admin API
2. Owns the state store pool, the state-update publisher and the
   core-admin HTTP client
3. Optionally registers this process as a live node and keeps the
   registration alive

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import asyncio
import os
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from __version__ import __version__, BUILD_DATE, EPOCH
from api.routes import router, set_services
from core.config import get_defaults
from core.logging import configure_logging, get_logger
from infrastructure import LockService
from messaging import close_publisher, get_publisher
from orchestrator import CommandContext
from repositories import DistributedStateStore, LiveNodeRepository, close_pool, init_pool
from services import CoreAdminClient

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

_ready = False


async def _heartbeat_loop(live_nodes: LiveNodeRepository, interval: float) -> None:
    """Keep this process's ephemeral registrations from expiring."""
    while True:
        await asyncio.sleep(interval)
        try:
            await live_nodes.heartbeat()
        except Exception as e:
            logger.warning(f"Live node heartbeat failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes collaborators on startup, cleans up on shutdown.
    """
    global _ready

    logger.info(f"Starting collections admin v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

    pool = await init_pool()
    store = DistributedStateStore(pool, session_id=os.environ.get("SESSION_ID") or uuid.uuid4().hex)
    await store.ensure_schema()
    logger.info("State store ready")

    publisher = await get_publisher()
    core_admin = CoreAdminClient()

    context = CommandContext.build(store, publisher, core_admin, LockService(pool))
    set_services(context)

    heartbeat: Optional[asyncio.Task] = None
    node_name = os.environ.get("NODE_NAME")
    if node_name:
        await context.live_nodes.register(node_name, os.environ.get("NODE_BASE_URL"))
        ttl = get_defaults().cluster.live_node_ttl_sec
        heartbeat = asyncio.create_task(_heartbeat_loop(context.live_nodes, ttl / 3))

    _ready = True

    yield

    logger.info("Shutting down collections admin...")
    _ready = False

    if heartbeat is not None:
        heartbeat.cancel()
        await context.live_nodes.unregister(node_name)

    set_services(None)
    await core_admin.close()
    await close_publisher()
    await close_pool()

    logger.info("Collections admin stopped")


# Create FastAPI app
app = FastAPI(
    title="Collections Admin",
    description="Create sharded, replicated collections across live nodes",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/")
async def root():
    return {
        "service": "Collections Admin",
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/livez")
async def livez():
    return {"status": "alive"}


@app.get("/readyz")
async def readyz():
    return {"status": "ready" if _ready else "starting"}


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
