"""
Lifecycle events: created, published, updated (auto-save), deleted, reverted.
Delivery is best-effort: handlers run after commit, their errors are logged, and coroutine
handlers run as background tasks so a slow subscriber never blocks the operation.
ENV: EVENT_WEBHOOK_URL, EVENT_WEBHOOK_TIMEOUT_SECONDS.
"""
import asyncio
import inspect
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import httpx

from version_engine.logging_config import get_logger

logger = get_logger(__name__)

EVENT_CREATED = "created"
EVENT_PUBLISHED = "published"
EVENT_UPDATED = "updated"
EVENT_DELETED = "deleted"
EVENT_REVERTED = "reverted"
ALL_EVENTS = "*"

EventHandler = Callable[[str, Dict[str, Any]], Union[None, Awaitable[None]]]


class VersionEventBus:
    """Observer registry. handler(event_name, payload)."""

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Register a handler; returns an unsubscribe callable."""
        self._handlers[event].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return unsubscribe

    def on_created(self, handler: EventHandler) -> Callable[[], None]:
        return self.subscribe(EVENT_CREATED, handler)

    def on_published(self, handler: EventHandler) -> Callable[[], None]:
        return self.subscribe(EVENT_PUBLISHED, handler)

    def on_any(self, handler: EventHandler) -> Callable[[], None]:
        return self.subscribe(ALL_EVENTS, handler)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])) + list(self._handlers.get(ALL_EVENTS, [])):
            try:
                result = handler(event, payload)
            except Exception as e:
                logger.warning("event.handler_failed", event_name=event, error=str(e))
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done(event))

    def _task_done(self, event: str) -> Callable[[asyncio.Task], None]:
        def done(task: asyncio.Task) -> None:
            self._tasks.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.warning("event.handler_failed", event_name=event, error=str(exc))

        return done

    async def drain(self) -> None:
        """Wait for in-flight async handlers (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class WebhookEventSink:
    """POST every event to a URL. Timeout, one retry, never raises."""

    RETRIES = 1

    def __init__(self, url: str, timeout_seconds: float = 5.0) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def __call__(self, event: str, payload: Dict[str, Any]) -> bool:
        body = {"event": event, **payload}
        last_error: Optional[str] = None
        for attempt in range(self.RETRIES + 1):
            try:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    resp = await client.post(self.url, json=body)
                if resp.status_code >= 400:
                    last_error = f"status={resp.status_code}"
                    logger.warning(
                        "event_webhook.failed",
                        event_name=event,
                        attempt=attempt + 1,
                        status=resp.status_code,
                        body=resp.text[:300],
                    )
                    continue
                logger.info("event_webhook.sent", event_name=event, status=resp.status_code)
                return True
            except Exception as e:
                last_error = str(e)
                logger.warning("event_webhook.error", event_name=event, attempt=attempt + 1, error=last_error)
        logger.warning("event_webhook.gave_up", event_name=event, error=last_error)
        return False
