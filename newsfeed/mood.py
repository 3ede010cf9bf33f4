# newsfeed/mood.py
"""
Scores candidates against a transient MoodProfile.

Note for testers: every term is deterministic except a small discovery
perturbation in [0, 0.1). Pass `rng` (anything with a `.random()` method,
e.g. a seeded `random.Random`) to make results reproducible.
"""
from __future__ import annotations

import random
from typing import Iterable, List, Optional, Protocol

from .models import Article
from .schema import MoodProfile, RecommendationScore

TOP_N = 30
MIN_DISPLAY_SCORE = 30  # exclusive
RANDOM_SPREAD = 0.1
MINUTES_SCALE = 20


class RandomSource(Protocol):
    def random(self) -> float: ...


def _topic_term(article: Article, mood: MoodProfile, reasons: List[str]) -> float:
    total, matches = 0.0, 0
    for tag in article.topic_tags or []:
        norm = tag.lower()
        for topic, bias in mood.topic_biases.items():
            t = topic.lower()
            if t in norm or norm in t:
                total += bias
                matches += 1
                if bias > 0.7:
                    reasons.append(f"High interest in {topic}")
    return (total / matches) * 0.3 if matches else 0.0


def score(article: Article, mood: MoodProfile, rng: Optional[RandomSource] = None) -> RecommendationScore:
    rng = rng or random
    reasons: List[str] = []
    total = 0.0

    depth_match = 1 - abs(mood.want_depth - article.depth_score)
    total += depth_match * 0.25
    if depth_match > 0.7:
        reasons.append(f"Matches your depth preference ({round(depth_match * 100)}%)")

    positivity_match = 1 - abs(mood.positivity_pref - article.positivity_score)
    total += positivity_match * 0.2
    if positivity_match > 0.7:
        reasons.append(f"Matches your mood tone ({round(positivity_match * 100)}%)")

    minutes = article.estimated_read_minutes or 3.0
    length_match = max(0.0, 1 - abs(mood.length_tolerance * MINUTES_SCALE - minutes) / MINUTES_SCALE)
    total += length_match * 0.15
    if length_match > 0.6:
        reasons.append(f"Good read length for your mood ({minutes:g}min)")

    total += _topic_term(article, mood, reasons)

    total += article.content_quality * 0.1
    total += min((article.engagement_score or 0.0) / 100, 0.1)

    total += rng.random() * RANDOM_SPREAD

    return RecommendationScore(article_id=article.id, score=total, reasons=reasons, algorithm="mood-based")


def rank(
    articles: Iterable[Article], mood: MoodProfile, rng: Optional[RandomSource] = None, limit: int = TOP_N
) -> List[RecommendationScore]:
    scored = [score(a, mood, rng) for a in articles]
    kept = [s for s in scored if s.display_score > MIN_DISPLAY_SCORE]
    kept.sort(key=lambda s: (-s.score, s.article_id))
    return kept[:limit]
