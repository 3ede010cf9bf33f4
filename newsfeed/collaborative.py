# newsfeed/collaborative.py
"""Recommendations from users with a similar engagement level."""
from __future__ import annotations

from typing import Collection, Dict, Iterable, List

from .models import Interaction, ReadingPattern
from .schema import RecommendationScore

SIMILARITY_WINDOW = 0.2
SCORE_BASE = 0.4
SCORE_PER_PEER = 0.05
SCORE_CAP = 0.8
POSITIVE_TYPES = {"like", "bookmark", "share"}


def find_similar_users(user_id: str, pattern: ReadingPattern, patterns: Iterable[ReadingPattern]) -> List[str]:
    return sorted(
        p.user_id
        for p in patterns
        if p.user_id != user_id and abs(p.engagement_score - pattern.engagement_score) <= SIMILARITY_WINDOW + 1e-9
    )


def score(
    user_id: str,
    pattern: ReadingPattern,
    patterns: Iterable[ReadingPattern],
    peer_interactions: Iterable[Interaction],
    exclude_ids: Collection[str] = (),
) -> List[RecommendationScore]:
    peers = set(find_similar_users(user_id, pattern, patterns))
    if not peers:
        return []

    counts: Dict[str, int] = {}
    for it in peer_interactions:
        if it.user_id not in peers or it.interaction_type not in POSITIVE_TYPES:
            continue
        if it.article_id in exclude_ids:
            continue
        counts[it.article_id] = counts.get(it.article_id, 0) + 1

    out = [
        RecommendationScore(
            article_id=article_id,
            score=min(SCORE_CAP, SCORE_BASE + count * SCORE_PER_PEER),
            reasons=[f"liked by {count} similar reader{'s' if count != 1 else ''}"],
            algorithm="collaborative",
        )
        for article_id, count in counts.items()
    ]
    out.sort(key=lambda s: (-s.score, s.article_id))
    return out
