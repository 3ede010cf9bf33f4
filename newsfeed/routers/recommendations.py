from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ..deps import current_user, get_recommender
from ..logging_setup import get_logger
from ..recommender import ALGORITHMS, Recommender
from ..schema import RecommendationScore

logger = get_logger("newsfeed.routes.recommendations")

router = APIRouter(tags=["Recommendations"])


def serialize(scores: List[RecommendationScore], recommender: Recommender) -> List[Dict]:
    articles = recommender.storage.articles_by_id(s.article_id for s in scores) if scores else {}
    return [
        {
            "article_id": s.article_id,
            "score": round(s.score, 4),
            "display_score": s.display_score,
            "reasons": s.reasons,
            "algorithm": s.algorithm,
            "article": articles[s.article_id].card() if s.article_id in articles else None,
        }
        for s in scores
    ]


@router.get("/recommendations")
async def get_recommendations(
    algorithm: Literal["hybrid", "content", "collaborative"] = "hybrid",
    muted_topic: List[str] = Query(default=[]),
    muted_source: List[str] = Query(default=[]),
    user_id: Optional[str] = Depends(current_user),
    recommender: Recommender = Depends(get_recommender),
):
    scores = await recommender.recommend(user_id, algorithm, muted_topic, muted_source)
    suppressed = scores is None
    if suppressed:
        # a pass for this user+algorithm is already running; serve the last stored list
        scores = recommender.stored(user_id, algorithm) if user_id else []
    return {
        "algorithm": ALGORITHMS[algorithm] if user_id else "content-based",
        "personalized": bool(user_id),
        "suppressed": suppressed,
        "items": serialize(scores, recommender),
    }
