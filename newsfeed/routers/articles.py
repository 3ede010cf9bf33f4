from typing import List

from fastapi import APIRouter

from ..logging_setup import get_logger
from ..quality_gate import evaluate
from ..schema import ArticleCandidate
from ..workflow import ingest_articles

logger = get_logger("newsfeed.routes.articles")

router = APIRouter(tags=["Articles"])

@router.post("/articles")
def post_articles(body: List[ArticleCandidate]):
    logger.info(f"Ingest requested: {len(body)} candidates")
    return ingest_articles(body)

@router.post("/quality/evaluate")
def evaluate_quality(body: ArticleCandidate):
    """Dry run of the quality gate; nothing is stored."""
    return evaluate(body).model_dump()
