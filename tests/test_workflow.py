# tests/test_workflow.py
import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from newsfeed import workflow
from newsfeed.errors import StorageFailure, ValidationError
from newsfeed.events import EventBus
from newsfeed.guards import UserLocks
from newsfeed.schema import ArticleCandidate, MoodProfile

BODY = "The council voted on Tuesday to extend the late-night bus network across the county. " * 12


def candidate(**kw):
    fields = dict(
        title="Council extends late-night bus network",
        content=BODY,
        url="https://news.example.com/transit",
        source_name="Metro Wire",
        topic_tags=["Politics"],
        category_id="local",
    )
    fields.update(kw)
    return ArticleCandidate(**fields)


def test_ingest_gates_persists_and_reports(storage):
    result = workflow.ingest_articles(
        [candidate(), candidate(title="Short", content="too short")],
        analyzer=lambda title, body, source: {"bias_score": 0.85, "content_quality_score": 1.4},
        storage=storage,
        bus=EventBus(),
    )
    assert len(result["accepted"]) == 1
    assert result["high_bias"] == result["accepted"]
    assert result["rejected"] == [{"title": "Short", "reason": "Content too short (minimum 800 characters)"}]
    assert result["failed"] == []

    saved = storage.articles_by_id(result["accepted"])[result["accepted"][0]]
    assert saved.bias == 0.85
    assert saved.content_quality == 1.0
    assert saved.estimated_read_minutes == 1.0
    assert saved.topic_tags == ["Politics"]


def test_ingest_publishes_accepted_articles(storage):
    async def scenario():
        bus = EventBus()
        sub = bus.subscribe()
        result = workflow.ingest_articles([candidate()], analyzer=lambda *a: {}, storage=storage, bus=bus)
        event = await asyncio.wait_for(sub.__anext__(), timeout=1)
        return result, event

    result, event = asyncio.run(scenario())
    assert event.article_id == result["accepted"][0]
    assert event.payload["title"] == "Council extends late-night bus network"


def test_ingest_continues_past_persist_failure(storage, mocker):
    mocker.patch.object(storage, "save_article", side_effect=StorageFailure("save_article failed"))
    result = workflow.ingest_articles([candidate()], analyzer=lambda *a: {}, storage=storage, bus=EventBus())
    assert result["accepted"] == []
    assert result["failed"] == ["Council extends late-night bus network"]


@pytest.mark.parametrize("user_id, article_id", [(None, "a1"), ("u1", None), ("", "a1")])
def test_feedback_requires_user_and_article(storage, user_id, article_id):
    with pytest.raises(ValidationError):
        workflow.process_feedback(user_id, article_id, "like", storage=storage)
    assert storage.query_interactions("u1") == []


def test_feedback_updates_pattern(storage, make_article):
    article = make_article(topic_tags=["Climate"], category_id="science", bias=0.2)
    pattern = workflow.process_feedback("u1", article.id, "like", storage=storage)
    assert pattern.engagement_score == pytest.approx(0.55)
    assert pattern.bias_tolerance == pytest.approx(0.65)
    assert pattern.topics_of_interest == ["Climate"]
    assert pattern.category_preferences == {"science": 1.0}


def test_concurrent_feedback_for_one_user_is_serialized(storage, make_article):
    article = make_article()
    locks = UserLocks()
    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(
            lambda _: workflow.process_feedback("u1", article.id, "dislike", storage=storage, locks=locks),
            range(8),
        ))
    pattern = storage.get_reading_pattern("u1")
    assert pattern.total_articles_read == 8
    assert pattern.engagement_score == pytest.approx(0.5 - 8 * 0.03)
    assert len(storage.query_interactions("u1")) == 8
    assert len(locks) == 0


def test_mood_and_presets(storage):
    profile = workflow.process_mood("u1", "tired after a long shift", "😴", ["commute"], storage=storage)
    assert profile == MoodProfile()
    assert storage.get_mood_state("u1").context_tags == ["commute"]

    workflow.save_mood_preset("u1", "  evening ", storage=storage)
    workflow.save_mood_preset("u1", "deep dive", {"want_depth": 0.9}, storage=storage)
    presets = workflow.list_mood_presets("u1", storage=storage)
    assert [p["name"] for p in presets] == ["evening", "deep dive"]
    assert presets[1]["profile"]["want_depth"] == 0.9
    assert presets[1]["profile"]["tone_words"] == ["neutral"]

    with pytest.raises(ValidationError):
        workflow.save_mood_preset("u1", "   ", storage=storage)
    with pytest.raises(ValidationError):
        workflow.save_mood_preset(None, "evening", storage=storage)


def test_anonymous_mood_is_not_stored(storage):
    workflow.process_mood(None, "happy", storage=storage)
    assert storage.get_mood_state("anonymous") is None


def test_digest(storage, make_article):
    a = make_article(title="Rates held steady")
    b = make_article(title="Storm season forecast", topic_tags=["Weather"])
    digest = workflow.build_digest([b.id, "missing", a.id], storage=storage)
    assert digest.article_count == 2
    assert digest.highlights == ["Storm season forecast", "Rates held steady"]
    with pytest.raises(ValidationError):
        workflow.build_digest([], storage=storage)


def test_read_minutes_and_depth():
    assert workflow.estimate_read_minutes("word " * 1000) == 5.0
    assert workflow.estimate_read_minutes("") == 1.0
    assert workflow.depth_score(15, 1.0) == 1.0
    assert workflow.depth_score(0, 0.0) == 0.0


def test_user_locks_are_released_after_use():
    locks = UserLocks()
    with locks.hold("u1"):
        with locks.hold("u2"):
            assert len(locks) == 2
    assert len(locks) == 0
