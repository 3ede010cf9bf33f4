# newsfeed/feed.py
"""
Live feed sessions.

Each FeedSession owns its visible list, a pending queue of fetched-but-unshown
items and a watermark (newest timestamp already incorporated). Refresh work
is expressed as tasks on the session's own queue, drained by one worker, so
sessions never share mutable state.

Invariants:
  - watermark only moves forward, except for the reset a manual refresh performs
  - nothing in visible or pending is dated in the future
  - a local edit (like, bookmark) survives any later refresh of the same article
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError

from . import config
from .events import ArticleEvent, EventBus, Subscription
from .logging_setup import get_logger
from .retry import RetryPolicy, retry_async
from .utils import coerce_datetime, utc_now

logger = get_logger("newsfeed.feed")

SCROLL_TOP_THRESHOLD_PX = 100


class FeedState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    INSERTED = "inserted"
    QUEUED = "queued"


@dataclass
class FeedItem:
    id: str
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "timestamp": self.timestamp.isoformat(), **self.data}


Fetcher = Callable[[Optional[datetime]], Awaitable[List[FeedItem]]]

_STOP = object()


def _newest_first(item: FeedItem):
    return (-item.timestamp.timestamp(), item.id)


class FeedSession:
    def __init__(
        self,
        session_id: str,
        user_id: Optional[str],
        fetcher: Fetcher,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_id = session_id
        self.user_id = user_id
        self.visible: List[FeedItem] = []
        self.pending: List[FeedItem] = []
        self.watermark: Optional[datetime] = None
        self.at_top = True
        self.state = FeedState.IDLE
        self.last_error: Optional[str] = None

        self._fetcher = fetcher
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.INITIAL_LOAD_ATTEMPTS, base_delay=config.INITIAL_LOAD_BACKOFF_SECONDS,
        )
        self._clock = clock
        self._sleep = sleep
        self._epoch = 0           # bumped by manual refresh and close; stale fetches compare against it
        self._in_flight = 0
        self._closed = False
        self._local_edits: Dict[str, Dict[str, Any]] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._auto_queued = False
        self._tasks: List[asyncio.Task] = []
        self._subscription: Optional[Subscription] = None

    # ---------- read side ----------

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "at_top": self.at_top,
            "watermark": self.watermark.isoformat() if self.watermark else None,
            "pending_count": self.pending_count,
            "visible": [i.as_dict() for i in self.visible],
            "last_error": self.last_error,
        }

    # ---------- fetches ----------

    async def load_initial(self) -> int:
        """Full fetch with bounded retries; each retry is a fresh fetch."""
        epoch = self._begin_fetch()
        try:
            items = await retry_async(lambda: self._fetcher(None), self._retry_policy, sleep=self._sleep)
        except BaseException:
            self._end_fetch()
            raise
        self._end_fetch()
        if self._stale(epoch):
            return 0
        return self._replace(items)

    async def refresh(self) -> int:
        """Incremental fetch since the watermark. Returns how many new items arrived."""
        if self._closed:
            return 0
        if self._in_flight:
            logger.debug("REFRESH_SUPPRESSED", extra={"session_id": self.session_id})
            return 0
        epoch = self._begin_fetch()
        try:
            items = await self._fetcher(self.watermark)
        except BaseException:
            self._end_fetch()
            raise
        self._end_fetch()
        if self._stale(epoch):
            logger.info("REFRESH_DISCARDED", extra={"session_id": self.session_id, "items": len(items)})
            return 0
        return self._merge(items)

    async def manual_refresh(self) -> int:
        """Reset watermark and pending right away, then replace visible with a full fetch."""
        if self._closed:
            return 0
        self._epoch += 1
        self.pending = []
        self.watermark = None
        epoch = self._begin_fetch()
        try:
            items = await self._fetcher(None)
        except BaseException:
            self._end_fetch()
            raise
        self._end_fetch()
        if self._stale(epoch):
            return 0
        return self._replace(items)

    def _begin_fetch(self) -> int:
        self._in_flight += 1
        self.state = FeedState.FETCHING
        return self._epoch

    def _end_fetch(self) -> None:
        self._in_flight -= 1
        if self.state is FeedState.FETCHING and not self._in_flight:
            self.state = FeedState.IDLE

    def _stale(self, epoch: int) -> bool:
        return self._closed or epoch != self._epoch

    # ---------- merge ----------

    def _admissible(self, items: List[FeedItem]) -> List[FeedItem]:
        """Drop future-dated and repeated items, newest first, local edits re-applied."""
        now = self._clock()
        seen = set()
        out: List[FeedItem] = []
        for item in items:
            ts = coerce_datetime(item.timestamp)
            if ts is None or ts > now or item.id in seen:
                continue
            seen.add(item.id)
            out.append(self._with_local_edits(FeedItem(item.id, ts, dict(item.data))))
        out.sort(key=_newest_first)
        return out

    def _advance_watermark(self, items: List[FeedItem]) -> None:
        if not items:
            return
        newest = max(i.timestamp for i in items)
        if self.watermark is None or newest > self.watermark:
            self.watermark = newest

    def _replace(self, items: List[FeedItem]) -> int:
        fresh = self._admissible(items)
        self.visible = fresh
        self.pending = []
        self._advance_watermark(fresh)
        self.state = FeedState.INSERTED if fresh else FeedState.IDLE
        logger.info("FEED_REPLACED", extra={"session_id": self.session_id, "items": len(fresh)})
        return len(fresh)

    def _merge(self, items: List[FeedItem], advance_watermark: bool = True) -> int:
        admissible = self._admissible(items)
        if advance_watermark:
            self._advance_watermark(admissible)
        known = {i.id for i in self.visible} | {i.id for i in self.pending}
        fresh = [i for i in admissible if i.id not in known]

        if self.at_top and (fresh or self.pending):
            # pending items go up with the new ones; clearing alone would drop them
            inserted = sorted(fresh + self.pending, key=_newest_first)
            self.visible = inserted + self.visible
            self.pending = []
            self.state = FeedState.INSERTED
        elif fresh:
            inserted = fresh
            self.pending = fresh + self.pending
            self.state = FeedState.QUEUED
        else:
            self.state = FeedState.IDLE
            return 0
        logger.info(
            "FEED_MERGED",
            extra={"session_id": self.session_id, "items": len(inserted), "outcome": self.state.value, "pending": self.pending_count},
        )
        return len(inserted)

    # ---------- user actions ----------

    def apply_pending(self) -> int:
        moved = len(self.pending)
        known = {i.id for i in self.pending}
        self.visible = self.pending + [i for i in self.visible if i.id not in known]
        self.pending = []
        if moved:
            self.state = FeedState.INSERTED
        return moved

    def set_scroll_offset(self, offset_px: float) -> None:
        self.at_top = offset_px < SCROLL_TOP_THRESHOLD_PX

    def update_article_locally(self, article_id: str, **changes: Any) -> int:
        """Apply a local edit to every copy of the article and remember it for later fetches."""
        self._local_edits.setdefault(article_id, {}).update(changes)
        touched = 0
        for item in self.visible + self.pending:
            if item.id == article_id:
                item.data = {**item.data, **changes}
                touched += 1
        return touched

    def _with_local_edits(self, item: FeedItem) -> FeedItem:
        edits = self._local_edits.get(item.id)
        if edits:
            item.data = {**item.data, **edits}
        return item

    # ---------- worker loop ----------

    def request_refresh(self, kind: str = "auto") -> bool:
        """Enqueue refresh work. A second queued auto refresh collapses into the first."""
        if self._closed:
            return False
        if kind == "auto":
            if self._auto_queued:
                return False
            self._auto_queued = True
        self._queue.put_nowait(kind)
        return True

    async def tick(self) -> None:
        """Scheduler entry point for the AutoRefresh interval."""
        self.request_refresh("auto")

    async def run(self) -> None:
        while True:
            kind = await self._queue.get()
            if kind is _STOP or self._closed:
                return
            try:
                if kind == "manual":
                    await self.manual_refresh()
                else:
                    self._auto_queued = False
                    await self.refresh()
                self.last_error = None
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = type(e).__name__
                logger.exception("FEED_REFRESH_FAILED", extra={"session_id": self.session_id, "kind": kind})

    async def consume(self, subscription: Subscription) -> None:
        """Merge pushed articles; repeats are dropped by id in the merge."""
        async for event in subscription:
            if self._closed:
                break
            self._merge([FeedItem(event.article_id, event.published_at, dict(event.payload))], advance_watermark=False)

    def start(self, bus: Optional[EventBus] = None) -> None:
        self._tasks.append(asyncio.create_task(self.run()))
        if bus is not None:
            self._subscription = bus.subscribe(lambda e: isinstance(e, ArticleEvent))
            self._tasks.append(asyncio.create_task(self.consume(self._subscription)))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._epoch += 1
        self._queue.put_nowait(_STOP)
        if self._subscription is not None:
            self._subscription.close()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []


class SessionRegistry:
    """Creates feed sessions, wires their AutoRefresh job and tears them down."""

    def __init__(
        self,
        fetcher_for: Callable[[Optional[str]], Fetcher],
        scheduler=None,
        bus: Optional[EventBus] = None,
        interval_seconds: int = config.AUTO_REFRESH_SECONDS,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._fetcher_for = fetcher_for
        self._scheduler = scheduler
        self._bus = bus
        self._interval = interval_seconds
        self._retry_policy = retry_policy
        self._sessions: Dict[str, FeedSession] = {}
        self._counter = 0

    def get(self, session_id: str) -> Optional[FeedSession]:
        return self._sessions.get(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, user_id: Optional[str]) -> FeedSession:
        self._counter += 1
        session_id = f"s{self._counter}-{utc_now().strftime('%H%M%S')}"
        session = FeedSession(session_id, user_id, self._fetcher_for(user_id), self._retry_policy)
        self._sessions[session_id] = session
        session.start(self._bus)
        if self._scheduler is not None:
            self._scheduler.add_job(
                session.tick, "interval", seconds=self._interval,
                id=f"feed-refresh:{session_id}", replace_existing=True,
            )
        try:
            await session.load_initial()
        except Exception as e:
            session.last_error = type(e).__name__
            logger.exception("FEED_INITIAL_LOAD_FAILED", extra={"session_id": session_id, "user_id": user_id})
        logger.info("FEED_SESSION_OPENED", extra={"session_id": session_id, "user_id": user_id, "items": len(session.visible)})
        return session

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if self._scheduler is not None:
            try:
                self._scheduler.remove_job(f"feed-refresh:{session_id}")
            except JobLookupError:
                pass
        await session.close()
        logger.info("FEED_SESSION_CLOSED", extra={"session_id": session_id})
        return True

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
