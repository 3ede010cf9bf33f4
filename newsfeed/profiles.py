# newsfeed/profiles.py
"""
Update rules for a user's long-term ReadingPattern.

Everything here is pure: callers hand in the current pattern (or None for a
first-time user) and get back a patch dict that Storage applies inside one
transaction.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Mapping, Optional

from .models import Article, Interaction, ReadingPattern
from .utils import clamp, coerce_datetime, utc_now

TOPIC_CAPACITY = 20
SOURCE_CAPACITY = 10
BIAS_TOLERANCE_FLOOR = 0.3
BIAS_TOLERANCE_STEP = 0.05
TOPIC_HISTORY_DAYS = 30

CATEGORY_DELTA = {"like": 1.0, "dislike": -0.5}
CATEGORY_DELTA_DEFAULT = 0.2

ENGAGEMENT_DELTA = {
    "like": 0.05,
    "bookmark": 0.08,
    "share": 0.10,
    "dislike": -0.03,
    "hide": -0.05,
    "report": -0.10,
}

# article.engagement_score / interaction_value per feedback event
INTERACTION_VALUE = {
    "like": 2.0,
    "dislike": -1.0,
    "bookmark": 3.0,
    "share": 5.0,
    "hide": -2.0,
    "report": -5.0,
}

POSITIVE_FEEDBACK = {"like", "bookmark", "share"}
NEGATIVE_FEEDBACK = {"dislike", "hide", "report"}

INTERACTION_POINTS = {"view": 1.0, "like": 4.0, "bookmark": 6.0, "share": 5.0}


def new_reading_pattern(user_id: str) -> ReadingPattern:
    """Neutral defaults for a user who has never given feedback."""
    return ReadingPattern(user_id=user_id)


def apply_feedback(pattern: Optional[ReadingPattern], article: Article, feedback_type: str) -> Dict[str, Any]:
    pattern = pattern or new_reading_pattern("")
    patch: Dict[str, Any] = {}

    categories = dict(pattern.category_preferences or {})
    if article.category_id:
        delta = CATEGORY_DELTA.get(feedback_type, CATEGORY_DELTA_DEFAULT)
        categories[article.category_id] = categories.get(article.category_id, 0.0) + delta
    patch["category_preferences"] = categories

    patch["engagement_score"] = clamp(pattern.engagement_score + ENGAGEMENT_DELTA.get(feedback_type, 0.0))

    # tolerance only narrows toward what the user demonstrates
    tolerance = pattern.bias_tolerance
    if (feedback_type in POSITIVE_FEEDBACK and article.bias < 0.3) or (
        feedback_type in NEGATIVE_FEEDBACK and article.bias > 0.7
    ):
        tolerance = max(BIAS_TOLERANCE_FLOOR, tolerance - BIAS_TOLERANCE_STEP)
    patch["bias_tolerance"] = tolerance

    topics = list(pattern.topics_of_interest or [])
    if feedback_type == "like" and article.topic_tags:
        liked = [t for t in article.topic_tags if t]
        lowered = {t.lower() for t in liked}
        topics = liked + [t for t in topics if t.lower() not in lowered]
    patch["topics_of_interest"] = topics[:TOPIC_CAPACITY]

    sources = list(pattern.preferred_sources or [])
    if feedback_type in ("like", "bookmark") and article.source_name:
        if article.source_name in sources:
            sources.remove(article.source_name)
        sources.append(article.source_name)
    patch["preferred_sources"] = sources[-SOURCE_CAPACITY:]

    patch["total_articles_read"] = (pattern.total_articles_read or 0) + 1
    return patch


def interaction_points(interaction: Interaction) -> float:
    kind = interaction.interaction_type
    if kind in INTERACTION_POINTS:
        return INTERACTION_POINTS[kind]
    if kind == "read_time":
        # seconds read, capped so one long read cannot dominate
        return min((interaction.interaction_value or 0.0) / 30.0, 3.0)
    return interaction.interaction_value or 1.0


def topic_weights(
    interactions: Iterable[Interaction],
    articles_by_id: Mapping[str, Article],
    now: Optional[datetime] = None,
) -> Dict[str, float]:
    """Accumulated interaction weight per topic tag over the last 30 days."""
    now = now or utc_now()
    cutoff = now - timedelta(days=TOPIC_HISTORY_DAYS)
    weights: Dict[str, float] = {}
    for it in interactions:
        created = coerce_datetime(it.created_at)
        if created is not None and created < cutoff:
            continue
        article = articles_by_id.get(it.article_id)
        if article is None:
            continue
        points = interaction_points(it)
        for tag in article.topic_tags or []:
            weights[tag] = weights.get(tag, 0.0) + points
    return weights
