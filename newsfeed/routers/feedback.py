from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from ..deps import current_user, get_recommender
from ..logging_setup import get_logger
from ..recommender import Recommender
from ..schema import FeedbackIn
from ..workflow import process_feedback

logger = get_logger("newsfeed.routes.feedback")

router = APIRouter(prefix="/feedback", tags=["Feedback"])

@router.post("")
def post_feedback(
    body: FeedbackIn,
    bg: BackgroundTasks,
    user_id: Optional[str] = Depends(current_user),
    recommender: Recommender = Depends(get_recommender),
):
    # the session header is the identity; the body field only serves header-less callers
    user_id = user_id or body.user_id
    logger.info(f"Feedback received: user={user_id} article={body.article_id} type={body.feedback_type}")
    pattern = process_feedback(user_id, body.article_id, body.feedback_type, body.value)
    # re-scoring runs after the response; a pass already in flight absorbs it
    bg.add_task(recommender.rescore, user_id)
    return {
        "ok": True,
        "engagement_score": pattern.engagement_score,
        "bias_tolerance": pattern.bias_tolerance,
        "total_articles_read": pattern.total_articles_read,
    }
