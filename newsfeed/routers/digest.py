from fastapi import APIRouter

from ..logging_setup import get_logger
from ..schema import DigestIn
from ..workflow import build_digest

logger = get_logger("newsfeed.routes.digest")

router = APIRouter(prefix="/digest", tags=["Digest"])

@router.post("")
def post_digest(body: DigestIn):
    logger.info(f"Digest requested for {len(body.article_ids)} articles")
    return build_digest(body.article_ids).model_dump()
