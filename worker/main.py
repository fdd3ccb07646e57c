# ============================================================================
# STATE UPDATER MAIN ENTRY POINT
# ============================================================================
# EPOCH: 1 - COLLECTION PROVISIONING
# STATUS: Worker - State updater process entry point
# PURPOSE: Run the single state-update consumer in standalone mode
# CREATED: 18 OCT 2026
# ============================================================================
"""
State Updater Main Entry Point

Starts the process that applies queued cluster-state mutations:
1. Opens the state store pool
2. Waits for the updater advisory lock (standby until then)
3. Drains the state-update session until shutdown

Usage:
    python -m worker.main

Environment Variables:
    DATABASE_URL: PostgreSQL connection
    STATE_UPDATE_QUEUE: Session-enabled state-update queue
    STATE_SERVICEBUS_CONNECTION_STRING: Service Bus connection
    STATE_SERVICEBUS_FQDN: Service Bus namespace (if using managed identity)
    USE_MANAGED_IDENTITY: "true" to use Azure managed identity
    PORT: Health server port (default 8000)
"""

import asyncio
import os
import sys
from typing import Optional

from aiohttp import web

from core.logging import configure_logging, get_logger
from infrastructure.locking import LockService
from messaging import MessagingConfig
from repositories import CollectionRepository, DistributedStateStore, close_pool, init_pool
from worker.consumer import StateUpdateConsumer
from worker.state_updater import StateUpdateProcessor
from __version__ import __version__, BUILD_DATE

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)

_consumer: Optional[StateUpdateConsumer] = None
_lock_service: Optional[LockService] = None
_status = "starting"


# ============================================================================
# HEALTH SERVER
# ============================================================================

async def health_handler(request):
    """Report version, lock ownership and consumer counters."""
    healthy = not _status.startswith("error")
    response_data = {
        "status": "healthy" if healthy else "unhealthy",
        "updater_status": _status,
        "version": __version__,
        "build_date": BUILD_DATE,
        "holds_lock": _lock_service.has_updater_lock if _lock_service else False,
    }
    if _consumer:
        response_data["stats"] = {
            "messages_received": _consumer.messages_received,
            "messages_applied": _consumer.messages_applied,
            "messages_failed": _consumer.messages_failed,
        }
    return web.json_response(response_data, status=200 if healthy else 503)


async def start_health_server(port: int = 8000):
    """Start minimal HTTP server for health probes."""
    app = web.Application()
    app.router.add_get("/health", health_handler)
    app.router.add_get("/livez", health_handler)

    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", port)
    await site.start()
    logger.info(f"Health server started on port {port}")
    return runner


# ============================================================================
# MAIN
# ============================================================================

async def main() -> None:
    global _consumer, _lock_service, _status

    logger.info(f"State updater starting v{__version__}")

    health_runner = await start_health_server(int(os.environ.get("PORT", "8000")))

    try:
        config = MessagingConfig.from_env()
    except ValueError as e:
        logger.error(f"Messaging not configured: {e}")
        _status = "error: no_service_bus"
        await health_runner.cleanup()
        sys.exit(1)

    pool = await init_pool()
    try:
        store = DistributedStateStore(pool)
        await store.ensure_schema()

        _lock_service = LockService(pool)
        _consumer = StateUpdateConsumer(
            config,
            StateUpdateProcessor(CollectionRepository(store)),
            lock_service=_lock_service,
        )
        _status = "running"
        await _consumer.run()

    except Exception as e:
        logger.exception(f"State updater failed: {e}")
        _status = f"error: {str(e)[:100]}"
        sys.exit(1)
    finally:
        await close_pool()
        await health_runner.cleanup()

    logger.info("State updater stopped")


def run() -> None:
    """Synchronous entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
