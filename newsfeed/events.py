# newsfeed/events.py
"""
In-process event stream.

`subscribe(predicate)` returns an async iterator of matching events. Delivery
is at-least-once: a publisher may repeat an event, so consumers de-duplicate
by article id.
"""
from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .logging_setup import get_logger

logger = get_logger("newsfeed.events")

ARTICLE_PUBLISHED = "article.published"


@dataclass(frozen=True)
class ArticleEvent:
    kind: str
    article_id: str
    published_at: datetime
    payload: Dict[str, Any] = field(default_factory=dict)


Predicate = Callable[[ArticleEvent], bool]

_CLOSED = object()


class Subscription:
    def __init__(self, bus: "EventBus", predicate: Predicate):
        self._bus = bus
        self._predicate = predicate
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop = asyncio.get_running_loop()
        self.closed = False

    def _offer(self, event: Any) -> None:
        if self.closed and event is not _CLOSED:
            return
        if event is not _CLOSED and not self._predicate(event):
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # loop already closed; nothing left to deliver to
            self.closed = True

    def close(self) -> None:
        if self.closed:
            return
        self._bus._unsubscribe(self)
        self._offer(_CLOSED)
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self) -> ArticleEvent:
        event = await self._queue.get()
        if event is _CLOSED:
            raise StopAsyncIteration
        return event


class EventBus:
    def __init__(self):
        self._subs: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, predicate: Optional[Predicate] = None) -> Subscription:
        """Must be called from inside a running event loop."""
        sub = Subscription(self, predicate or (lambda _e: True))
        with self._lock:
            self._subs.append(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    def publish(self, event: ArticleEvent) -> None:
        """Thread-safe; callable from sync routes and worker threads."""
        with self._lock:
            subs = list(self._subs)
        for sub in subs:
            sub._offer(event)
        logger.debug("EVENT_PUBLISHED", extra={"kind": event.kind, "article_id": event.article_id, "subscribers": len(subs)})


bus = EventBus()
