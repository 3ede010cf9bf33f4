# tests/test_profiles.py
from datetime import datetime, timedelta, timezone

import pytest

from newsfeed.models import Article, Interaction, ReadingPattern
from newsfeed.profiles import apply_feedback, new_reading_pattern, topic_weights

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def ago(**kw):
    return NOW - timedelta(**kw)


def article(**kw):
    fields = dict(id="a1", title="t", category_id="economy", topic_tags=["Business"], source_name="Wire", bias=0.5)
    fields.update(kw)
    return Article(**fields)


def applied(pattern, patch):
    for k, v in patch.items():
        setattr(pattern, k, v)
    return pattern


def test_first_like_from_neutral_defaults():
    patch = apply_feedback(None, article(), "like")
    assert patch["category_preferences"] == {"economy": 1.0}
    assert patch["engagement_score"] == pytest.approx(0.55)
    assert patch["topics_of_interest"] == ["Business"]
    assert patch["preferred_sources"] == ["Wire"]
    assert patch["total_articles_read"] == 1
    assert patch["bias_tolerance"] == 0.7


def test_category_increments_by_feedback_type():
    p = new_reading_pattern("u")
    for kind in ("like", "dislike", "share"):
        applied(p, apply_feedback(p, article(), kind))
    assert p.category_preferences["economy"] == pytest.approx(0.7)


def test_engagement_stays_in_unit_interval():
    p = new_reading_pattern("u")
    for _ in range(50):
        applied(p, apply_feedback(p, article(), "report"))
    assert p.engagement_score == 0.0
    for _ in range(50):
        applied(p, apply_feedback(p, article(), "share"))
    assert p.engagement_score == 1.0


def test_bias_tolerance_narrows_and_floors():
    p = new_reading_pattern("u")
    applied(p, apply_feedback(p, article(bias=0.2), "like"))
    assert abs(p.bias_tolerance - 0.65) < 1e-9
    applied(p, apply_feedback(p, article(bias=0.9), "dislike"))
    assert abs(p.bias_tolerance - 0.60) < 1e-9
    for _ in range(20):
        applied(p, apply_feedback(p, article(bias=0.1), "bookmark"))
    assert p.bias_tolerance == 0.3


def test_bias_tolerance_never_widens():
    p = ReadingPattern(user_id="u", bias_tolerance=0.4)
    for kind in ("like", "dislike", "hide"):
        applied(p, apply_feedback(p, article(bias=0.5), kind))
    assert p.bias_tolerance == 0.4


def test_topics_most_recent_first_and_capped():
    p = new_reading_pattern("u")
    for i in range(25):
        applied(p, apply_feedback(p, article(topic_tags=[f"t{i}"]), "like"))
    assert len(p.topics_of_interest) == 20
    assert p.topics_of_interest[0] == "t24"
    applied(p, apply_feedback(p, article(topic_tags=["T10"]), "like"))
    assert p.topics_of_interest[0] == "T10"
    assert "t10" not in p.topics_of_interest


def test_sources_capped_oldest_dropped():
    p = new_reading_pattern("u")
    for i in range(12):
        applied(p, apply_feedback(p, article(source_name=f"s{i}"), "bookmark"))
    assert p.preferred_sources == [f"s{i}" for i in range(2, 12)]


def test_dislike_does_not_add_source_or_topics():
    patch = apply_feedback(None, article(), "dislike")
    assert patch["preferred_sources"] == []
    assert patch["topics_of_interest"] == []


def test_topic_weights_from_recent_interactions():
    arts = {
        "a1": article(id="a1", topic_tags=["AI"]),
        "a2": article(id="a2", topic_tags=["AI", "Health"]),
    }
    its = [
        Interaction(user_id="u", article_id="a1", interaction_type="like", created_at=ago(days=1)),
        Interaction(user_id="u", article_id="a2", interaction_type="bookmark", created_at=ago(days=2)),
        Interaction(user_id="u", article_id="a2", interaction_type="read_time", interaction_value=600, created_at=ago(days=3)),
        Interaction(user_id="u", article_id="a1", interaction_type="share", created_at=NOW - timedelta(days=40)),
        Interaction(user_id="u", article_id="missing", interaction_type="like", created_at=ago(days=1)),
    ]
    weights = topic_weights(its, arts, now=NOW)
    assert weights == {"AI": 4 + 6 + 3, "Health": 6 + 3}
