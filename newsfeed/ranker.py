# newsfeed/ranker.py
"""Content-based scoring of candidate articles against a ReadingPattern."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Collection, Dict, Iterable, List, Optional, Tuple

from .models import Article, ReadingPattern
from .schema import RecommendationScore
from .utils import clamp, coerce_datetime, utc_now

BASE_SCORE = 0.5
TOP_N = 20

# baseline bar; anything below never becomes a content recommendation
MIN_QUALITY = 0.6
MIN_CREDIBILITY = 0.6
MAX_POLARIZATION = 0.7

TOPIC_WEIGHT_SCALE = 0.02
TOPIC_TERM_CAP = 0.15
FRESH_WINDOW = timedelta(hours=24)


def passes_baseline(article: Article) -> bool:
    return (
        article.content_quality >= MIN_QUALITY
        and article.credibility >= MIN_CREDIBILITY
        and article.polarization <= MAX_POLARIZATION
    )


def _strongest_topic(article: Article, weights: Dict[str, float]) -> Tuple[Optional[str], float]:
    lowered = {k.lower(): (k, v) for k, v in weights.items()}
    best: Tuple[Optional[str], float] = (None, 0.0)
    for tag in article.topic_tags or []:
        hit = lowered.get(tag.lower())
        if hit and hit[1] > best[1]:
            best = (tag, hit[1])
    return best


def score(
    article: Article,
    pattern: ReadingPattern,
    exclude_ids: Collection[str] = (),
    topic_weights: Optional[Dict[str, float]] = None,
    now: Optional[datetime] = None,
) -> Optional[RecommendationScore]:
    if article.id in exclude_ids or not passes_baseline(article):
        return None
    now = now or utc_now()
    total = BASE_SCORE
    reasons: List[str] = []

    total += (article.content_quality - 0.5) * 0.2
    if article.content_quality >= 0.8:
        reasons.append("high quality content")

    if abs(article.bias - 0.5) <= pattern.bias_tolerance:
        total += 0.15
        reasons.append("matches bias preference")
    else:
        total -= 0.1

    sentiment_fit = 1 - abs(article.sentiment - pattern.sentiment_preference)
    total += sentiment_fit * 0.1
    if sentiment_fit >= 0.8:
        reasons.append("matches sentiment preference")

    topic, weight = _strongest_topic(article, topic_weights or {})
    if topic:
        total += min(TOPIC_TERM_CAP, weight * TOPIC_WEIGHT_SCALE)
        reasons.append(f"interest in {topic}")

    if article.source_name and article.source_name in (pattern.preferred_sources or []):
        total += 0.1
        reasons.append("from a preferred source")

    if pattern.reading_time_preference is not None and article.estimated_read_minutes <= pattern.reading_time_preference:
        total += 0.05
        reasons.append("fits your reading time")

    total += (article.credibility - 0.5) * 0.15
    if article.credibility >= 0.8:
        reasons.append("credible source")

    created = coerce_datetime(article.created_at)
    if created is not None and now - created < FRESH_WINDOW:
        total += 0.05
        reasons.append("recent news")

    return RecommendationScore(
        article_id=article.id, score=clamp(total), reasons=reasons, algorithm="content-based",
    )


def _sort_key(item: Tuple[RecommendationScore, Article]):
    sc, article = item
    ts = coerce_datetime(article.timestamp)
    return (-sc.score, -(ts.timestamp() if ts else 0.0), sc.article_id)


def rank(
    articles: Iterable[Article],
    pattern: ReadingPattern,
    exclude_ids: Collection[str] = (),
    topic_weights: Optional[Dict[str, float]] = None,
    now: Optional[datetime] = None,
    limit: int = TOP_N,
) -> List[RecommendationScore]:
    """Score, then order by score, newer first on ties, then id."""
    now = now or utc_now()
    excluded = set(exclude_ids)
    scored = []
    for article in articles:
        sc = score(article, pattern, excluded, topic_weights, now)
        if sc is not None:
            scored.append((sc, article))
    scored.sort(key=_sort_key)
    return [sc for sc, _ in scored[:limit]]
