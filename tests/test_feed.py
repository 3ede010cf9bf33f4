# tests/test_feed.py
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from newsfeed.events import ARTICLE_PUBLISHED, ArticleEvent, EventBus
from newsfeed.feed import FeedItem, FeedSession, FeedState, SessionRegistry
from newsfeed.retry import RetryPolicy

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def item(id, hours_ago, **data):
    return FeedItem(id, NOW - timedelta(hours=hours_ago), data)


class Scripted:
    """Fetcher returning one scripted response per call; a response may wait on a gate."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.on_call = None

    async def __call__(self, since):
        self.calls.append(since)
        if self.on_call:
            self.on_call(since)
        resp = self.responses.pop(0) if self.responses else []
        if isinstance(resp, tuple):
            gate, items = resp
            await gate.wait()
            return items
        if isinstance(resp, Exception):
            raise resp
        return resp


async def _no_sleep(_seconds):
    return None


def make(fetcher, **kw):
    return FeedSession("s1", "u1", fetcher, clock=lambda: NOW, sleep=_no_sleep, **kw)


def test_at_top_prepends_and_clears_pending():
    async def scenario():
        s = make(Scripted([item("a1", 5), item("a2", 4)], [item("n1", 1), item("n2", 2), item("n3", 3)]))
        await s.load_initial()
        before = len(s.visible)
        added = await s.refresh()
        return s, before, added

    s, before, added = asyncio.run(scenario())
    assert added == 3
    assert len(s.visible) == before + 3
    assert s.pending == []
    assert [i.id for i in s.visible[:3]] == ["n1", "n2", "n3"]
    assert s.state is FeedState.INSERTED
    assert s.watermark == NOW - timedelta(hours=1)


def test_watermark_never_moves_back():
    async def scenario():
        s = make(Scripted([item("a1", 1)], [item("late", 6)]))
        await s.load_initial()
        await s.refresh()
        return s

    s = asyncio.run(scenario())
    assert s.watermark == NOW - timedelta(hours=1)
    assert {i.id for i in s.visible} == {"a1", "late"}


def test_scrolled_down_queues_without_touching_visible():
    async def scenario():
        s = make(Scripted([item("a1", 5)], [item("n1", 1), item("n2", 2)]))
        await s.load_initial()
        s.set_scroll_offset(450)
        visible = list(s.visible)
        await s.refresh()
        return s, visible

    s, visible = asyncio.run(scenario())
    assert s.visible == visible
    assert s.pending_count == 2
    assert s.state is FeedState.QUEUED


def test_incremental_fetch_passes_watermark():
    fetcher = Scripted([item("a1", 5)], [])
    s = make(fetcher)
    asyncio.run(s.load_initial())
    asyncio.run(s.refresh())
    assert fetcher.calls == [None, NOW - timedelta(hours=5)]


def test_future_and_duplicate_items_dropped():
    async def scenario():
        s = make(Scripted(
            [item("a1", 2)],
            [item("a1", 2), item("n1", 1), FeedItem("future", NOW + timedelta(minutes=5))],
        ))
        await s.load_initial()
        added = await s.refresh()
        return s, added

    s, added = asyncio.run(scenario())
    assert added == 1
    assert [i.id for i in s.visible] == ["n1", "a1"]
    assert s.watermark == NOW - timedelta(hours=1)


def test_apply_pending_moves_queue_to_front():
    async def scenario():
        s = make(Scripted([item("a1", 5)], [item("n1", 1)]))
        await s.load_initial()
        s.set_scroll_offset(100)
        await s.refresh()
        return s

    s = asyncio.run(scenario())
    assert not s.at_top
    assert s.apply_pending() == 1
    assert [i.id for i in s.visible] == ["n1", "a1"]
    assert s.pending == []


def test_local_edit_survives_refresh():
    async def scenario():
        s = make(Scripted([item("a1", 5, liked=False)], [item("a1", 5, liked=False), item("a2", 1)]))
        await s.load_initial()
        s.set_scroll_offset(300)
        touched = s.update_article_locally("a1", liked=True)
        await s.manual_refresh()
        return s, touched

    s, touched = asyncio.run(scenario())
    assert touched == 1
    by_id = {i.id: i for i in s.visible}
    assert by_id["a1"].data["liked"] is True


def test_local_edit_applies_to_pending_copy():
    async def scenario():
        s = make(Scripted([item("a1", 5)], [item("n1", 1, bookmarked=False)]))
        await s.load_initial()
        s.set_scroll_offset(300)
        await s.refresh()
        s.update_article_locally("n1", bookmarked=True)
        return s

    s = asyncio.run(scenario())
    assert s.pending[0].data["bookmarked"] is True


def test_manual_refresh_resets_before_fetch_even_with_auto_in_flight():
    async def scenario():
        gate = asyncio.Event()
        fetcher = Scripted(
            [item("a1", 5)],
            [item("a2", 4)],
            (gate, [item("a3", 1)]),
            [item("a1", 5), item("a2", 4), item("a4", 2)],
        )
        s = make(fetcher)
        await s.load_initial()
        s.set_scroll_offset(500)
        await s.refresh()
        assert s.pending_count == 1

        auto = asyncio.create_task(s.refresh())
        await asyncio.sleep(0)
        assert s.state is FeedState.FETCHING

        seen = {}
        fetcher.on_call = lambda since: seen.update(since=since, pending=list(s.pending), watermark=s.watermark)
        manual_added = await s.manual_refresh()
        gate.set()
        auto_added = await auto
        return s, seen, manual_added, auto_added

    s, seen, manual_added, auto_added = asyncio.run(scenario())
    assert seen == {"since": None, "pending": [], "watermark": None}
    assert manual_added == 3
    assert auto_added == 0  # stale result discarded
    assert [i.id for i in s.visible] == ["a4", "a2", "a1"]
    assert s.pending == []
    assert s.watermark == NOW - timedelta(hours=2)


def test_concurrent_auto_refresh_is_suppressed():
    async def scenario():
        gate = asyncio.Event()
        fetcher = Scripted((gate, [item("a1", 1)]))
        s = make(fetcher)
        first = asyncio.create_task(s.refresh())
        await asyncio.sleep(0)
        second = await s.refresh()
        gate.set()
        return fetcher, second, await first

    fetcher, second, first = asyncio.run(scenario())
    assert second == 0
    assert first == 1
    assert len(fetcher.calls) == 1


def test_results_after_close_are_discarded():
    async def scenario():
        gate = asyncio.Event()
        s = make(Scripted((gate, [item("a1", 1)])))
        pending = asyncio.create_task(s.refresh())
        await asyncio.sleep(0)
        await s.close()
        gate.set()
        return s, await pending

    s, added = asyncio.run(scenario())
    assert added == 0
    assert s.visible == []
    assert s.closed


def test_initial_load_retries_with_backoff():
    delays = []

    async def record(seconds):
        delays.append(seconds)

    fetcher = Scripted(RuntimeError("down"), RuntimeError("still down"), [item("a1", 1)])
    s = FeedSession("s1", None, fetcher, RetryPolicy(max_attempts=3, base_delay=2.0), clock=lambda: NOW, sleep=record)
    assert asyncio.run(s.load_initial()) == 1
    assert len(fetcher.calls) == 3
    assert delays == [2.0, 4.0]


def test_initial_load_gives_up_after_max_attempts():
    fetcher = Scripted(*[RuntimeError("down")] * 5)
    s = make(fetcher, retry_policy=RetryPolicy(max_attempts=3))
    with pytest.raises(RuntimeError):
        asyncio.run(s.load_initial())
    assert len(fetcher.calls) == 3
    assert s.state is FeedState.IDLE


def test_queued_auto_refreshes_collapse_and_worker_drains():
    async def scenario():
        fetcher = Scripted([item("a1", 1)], [])
        s = make(fetcher)
        results = [s.request_refresh("auto"), s.request_refresh("auto"), s.request_refresh("manual")]
        s.start()
        for _ in range(10):
            await asyncio.sleep(0)
        await s.close()
        return s, fetcher, results

    s, fetcher, results = asyncio.run(scenario())
    assert results == [True, False, True]
    assert len(fetcher.calls) == 2
    assert not s.request_refresh("auto")


def test_pushed_events_merge_once_without_moving_watermark():
    async def scenario():
        bus = EventBus()
        s = make(Scripted([item("a1", 5)]))
        await s.load_initial()
        s.start(bus)
        ev = ArticleEvent(ARTICLE_PUBLISHED, "b1", NOW - timedelta(hours=1), {"title": "Breaking"})
        bus.publish(ev)
        bus.publish(ev)  # at-least-once delivery
        for _ in range(10):
            await asyncio.sleep(0)
        await s.close()
        return s

    s = asyncio.run(scenario())
    assert [i.id for i in s.visible] == ["b1", "a1"]
    assert s.visible[0].data["title"] == "Breaking"
    assert s.watermark == NOW - timedelta(hours=5)


def test_registry_schedules_and_removes_auto_refresh(mocker):
    scheduler = mocker.Mock()

    async def scenario():
        registry = SessionRegistry(lambda user_id: Scripted([item("a1", 1)]), scheduler=scheduler, interval_seconds=300)
        session = await registry.open("u1")
        job_id = scheduler.add_job.call_args.kwargs["id"]
        closed = await registry.close(session.session_id)
        return registry, session, job_id, closed

    registry, session, job_id, closed = asyncio.run(scenario())
    assert job_id == f"feed-refresh:{session.session_id}"
    assert scheduler.add_job.call_args.kwargs["seconds"] == 300
    scheduler.remove_job.assert_called_once_with(job_id)
    assert closed and len(registry) == 0
    assert session.closed


def test_pending_item_refetched_at_top_is_kept():
    async def scenario():
        bus = EventBus()
        s = make(Scripted([item("a1", 5)], [item("b1", 2), item("n2", 1)]))
        await s.load_initial()
        s.start(bus)
        s.set_scroll_offset(500)
        bus.publish(ArticleEvent(ARTICLE_PUBLISHED, "b1", NOW - timedelta(hours=2)))
        for _ in range(10):
            await asyncio.sleep(0)
        queued = [i.id for i in s.pending]
        s.set_scroll_offset(0)
        added = await s.refresh()
        await s.close()
        return s, queued, added

    s, queued, added = asyncio.run(scenario())
    assert queued == ["b1"]
    assert added == 2
    assert [i.id for i in s.visible] == ["n2", "b1", "a1"]
    assert s.pending == []


def test_pending_promoted_when_refetch_brings_nothing_new():
    async def scenario():
        bus = EventBus()
        s = make(Scripted([item("a1", 5)], [item("b1", 2)]))
        await s.load_initial()
        s.start(bus)
        s.set_scroll_offset(500)
        bus.publish(ArticleEvent(ARTICLE_PUBLISHED, "b1", NOW - timedelta(hours=2)))
        for _ in range(10):
            await asyncio.sleep(0)
        s.set_scroll_offset(0)
        added = await s.refresh()
        await s.close()
        return s, added

    s, added = asyncio.run(scenario())
    assert added == 1
    assert [i.id for i in s.visible] == ["b1", "a1"]
    assert s.pending == []
