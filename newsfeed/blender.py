# newsfeed/blender.py
"""
Blends content-based and collaborative scores into one ranked list.

Single-source hits are scaled by their own weight and never renormalized,
so a collaborative-only article tops out near 0.24.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from . import mood
from .models import Article
from .schema import MoodProfile, RecommendationScore

CONTENT_WEIGHT = 0.7
COLLABORATIVE_WEIGHT = 0.3
TOP_N = 20


def _best_by_id(scores: Iterable[RecommendationScore]) -> Dict[str, RecommendationScore]:
    """Highest score per article; equal-score duplicates merge their reasons in a fixed order."""
    best: Dict[str, RecommendationScore] = {}
    for s in scores:
        cur = best.get(s.article_id)
        if cur is None or s.score > cur.score:
            best[s.article_id] = s
        elif s.score == cur.score and s.reasons != cur.reasons:
            first, second = sorted((cur, s), key=lambda r: tuple(r.reasons))
            best[s.article_id] = RecommendationScore(
                article_id=s.article_id,
                score=cur.score,
                reasons=list(first.reasons) + list(second.reasons),
                algorithm=min(cur.algorithm, s.algorithm),
            )
    return best


def blend(
    content_scores: Iterable[RecommendationScore],
    collaborative_scores: Iterable[RecommendationScore],
    limit: int = TOP_N,
) -> List[RecommendationScore]:
    content = _best_by_id(content_scores)
    collab = _best_by_id(collaborative_scores)

    out: List[RecommendationScore] = []
    for article_id in content.keys() | collab.keys():
        c, k = content.get(article_id), collab.get(article_id)
        if c and k:
            out.append(RecommendationScore(
                article_id=article_id,
                score=c.score * CONTENT_WEIGHT + k.score * COLLABORATIVE_WEIGHT,
                reasons=list(c.reasons) + list(k.reasons),
                algorithm="hybrid",
            ))
        elif c:
            out.append(c.model_copy(update={"score": c.score * CONTENT_WEIGHT}))
        else:
            out.append(k.model_copy(update={"score": k.score * COLLABORATIVE_WEIGHT}))

    out.sort(key=lambda s: (-s.score, s.article_id))
    return out[:limit]


def mood_ranked(
    articles: Iterable[Article], profile: MoodProfile, rng: Optional[mood.RandomSource] = None
) -> List[RecommendationScore]:
    return mood.rank(articles, profile, rng)
