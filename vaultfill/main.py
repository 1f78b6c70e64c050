"""VaultFill HTTP service: logging, vault store, event bus and trackers.

Usage:
    python -m vaultfill.main

The vault backend is chosen by STORE_BACKEND: "memory" (default) or "sql".
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from vaultfill.api.routes import router as vault_router
from vaultfill.config import settings
from vaultfill.events import clear_subscribers, start_event_system, stop_event_system, subscribe
from vaultfill.tracking.ambiguity import AmbiguityTracker
from vaultfill.tracking.learning import LearningTracker
from vaultfill.vault.memory import InMemoryVaultStore
from vaultfill.vault.store import VaultStore

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """stdlib logging for every module, structlog on top; JSON lines in production."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    renderer = structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def register_trackers(store: VaultStore) -> None:
    """Subscribe the learning and ambiguity trackers to the event bus."""
    for tracker in (LearningTracker(store), AmbiguityTracker(store)):
        subscribe(tracker.on_event, event_types=tracker.watched_types)


async def _open_store(stack: AsyncExitStack) -> VaultStore:
    if settings.store_backend == "sql":
        from vaultfill.db.engine import async_session_factory, db_lifespan
        from vaultfill.vault.sql import SqlVaultStore

        await stack.enter_async_context(db_lifespan())
        logger.info("SQL vault store connected")
        return SqlVaultStore(async_session_factory)

    logger.warning("Using in-memory vault store, data is lost on restart")
    return InMemoryVaultStore()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the vault store, start event delivery, and wire the trackers."""
    logger.info("Starting VaultFill (env=%s, store=%s)", settings.environment, settings.store_backend)

    async with AsyncExitStack() as stack:
        store = await _open_store(stack)
        app.state.store = store

        register_trackers(store)
        await start_event_system()

        try:
            yield
        finally:
            # Queued fills and selections are still recorded before the store closes
            await stop_event_system()
            clear_subscribers()

    logger.info("VaultFill stopped")


configure_logging()

app = FastAPI(
    title="VaultFill API",
    description="Multi-source field resolution for document-vault form auto-fill",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(vault_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {
        "status": "ok",
        "environment": settings.environment,
        "store_backend": settings.store_backend,
    }


if __name__ == "__main__":
    uvicorn.run(
        "vaultfill.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
