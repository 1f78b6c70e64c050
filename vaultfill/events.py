"""In-process event bus for resolution side effects.

Resolution, alternatives and ingestion publish SystemEvents; the learning
and ambiguity trackers subscribe to them. Publishing only enqueues. A single
worker task delivers each event to its handlers, so a slow or failing
tracker can never change what the publisher returns.

    await emit(SystemEvent(event_type=EventType.FIELD_FILLED, user_id=uid, data={...}))

    subscribe(tracker.on_event, event_types=tracker.watched_types)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from vaultfill.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Awaitable[None]]

# Key None holds handlers that receive every event type
_handlers: dict[EventType | None, list[EventHandler]] = {}
_queue: asyncio.Queue[SystemEvent] | None = None
_worker: asyncio.Task[None] | None = None


# ── Subscriptions ────────────────────────────────────────────────────


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    """Register `handler` for `event_types`, or for every event when None."""
    keys: list[EventType | None] = [None] if event_types is None else list(event_types)
    for key in keys:
        _handlers.setdefault(key, []).append(handler)
    logger.info(
        "Subscribed %s to %s",
        _name(handler),
        "all events" if event_types is None else ", ".join(t.value for t in event_types),
    )


def unsubscribe(handler: EventHandler) -> None:
    for handlers in _handlers.values():
        while handler in handlers:
            handlers.remove(handler)


def clear_subscribers() -> None:
    """Drop every registered handler. Used on shutdown and in tests."""
    _handlers.clear()


def handlers_for(event_type: EventType) -> list[EventHandler]:
    """Handlers an event of this type reaches, catch-all handlers first."""
    return [*_handlers.get(None, []), *_handlers.get(event_type, [])]


# ── Publishing ───────────────────────────────────────────────────────


async def emit(event: SystemEvent) -> None:
    """Queue an event for delivery and return without waiting for handlers."""
    _ensure_worker().put_nowait(event)
    logger.debug("Queued %s (user=%s)", event.event_type.value, event.user_id)


async def emit_nowait(event: SystemEvent) -> None:
    """Deliver an event inline, bypassing the queue. Meant for tests and scripts."""
    await deliver(event)


async def deliver(event: SystemEvent) -> None:
    """Run every matching handler concurrently. Handler errors are logged only."""
    handlers = handlers_for(event.event_type)
    if not handlers:
        return

    outcomes = await asyncio.gather(*(handler(event) for handler in handlers), return_exceptions=True)
    for handler, outcome in zip(handlers, outcomes, strict=True):
        if isinstance(outcome, Exception):
            logger.error(
                "Handler %s failed on %s",
                _name(handler),
                event.event_type.value,
                exc_info=outcome,
            )


# ── Worker ───────────────────────────────────────────────────────────


def _ensure_worker() -> asyncio.Queue[SystemEvent]:
    global _queue, _worker
    if _queue is None or _worker is None or _worker.done():
        _queue = asyncio.Queue()
        _worker = asyncio.create_task(_drain(_queue), name="vaultfill-events")
        logger.info("Event worker started")
    return _queue


async def _drain(queue: asyncio.Queue[SystemEvent]) -> None:
    while True:
        event = await queue.get()
        try:
            await deliver(event)
        except Exception:
            logger.exception("Event worker failed on %s", event.event_type.value)
        finally:
            queue.task_done()


async def start_event_system() -> None:
    """Start the delivery worker. Called from the app lifespan."""
    _ensure_worker()
    logger.info("Event system started with %d handlers", sum(len(h) for h in _handlers.values()))


async def stop_event_system() -> None:
    """Deliver everything already queued, then stop the worker."""
    global _queue, _worker
    if _worker is not None and not _worker.done():
        if _queue is not None:
            await _queue.join()
        _worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await _worker

    _queue = None
    _worker = None
    logger.info("Event system stopped")


def _name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)
