# newsfeed/workflow.py
"""
Ingress pipelines: article ingestion, feedback, mood, presets and digest.

Each pipeline logs its steps with a shared correlation id and per-step
timings, the same way for every entry point.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence
import time
import uuid

from .analysis import analyze_quality, derive_mood_profile, summarize
from .errors import StorageFailure, ValidationError
from .events import ARTICLE_PUBLISHED, ArticleEvent, EventBus, bus as default_bus
from .guards import UserLocks
from .logging_setup import get_logger
from .models import Article, MoodPreset, ReadingPattern
from .profiles import INTERACTION_VALUE, apply_feedback
from .quality_gate import Analyzer, evaluate
from .schema import ArticleCandidate, DigestSummary, MoodProfile
from .store import Storage
from .utils import clamp, coerce_datetime

logger = get_logger("newsfeed.workflow")

WORDS_PER_MINUTE = 200
DEEP_READ_MINUTES = 15

_storage = Storage()
_user_locks = UserLocks()


def _x(run_id: str, **fields) -> Dict[str, Any]:
    return {"run_id": run_id, **fields}


def _elapsed_ms(t: float) -> int:
    return round((time.perf_counter() - t) * 1000)


def estimate_read_minutes(text: str) -> float:
    words = len((text or "").split())
    return max(1.0, round(words / WORDS_PER_MINUTE, 1))


def depth_score(read_minutes: float, content_quality: float) -> float:
    """Longer, higher-quality pieces count as deeper reads."""
    return clamp(0.5 * min(read_minutes / DEEP_READ_MINUTES, 1.0) + 0.5 * content_quality)


def ingest_articles(
    candidates: Iterable[ArticleCandidate],
    analyzer: Analyzer = analyze_quality,
    storage: Optional[Storage] = None,
    bus: Optional[EventBus] = None,
) -> Dict[str, Any]:
    """
    Gate, persist and publish each candidate.
    - rejected candidates are reported with their reason and never stored
    - accepted ones are stored with clamped dimensions and announced on the bus
    """
    storage = storage or _storage
    bus = bus or default_bus
    run_id = uuid.uuid4().hex[:8]
    t0 = time.perf_counter()

    accepted: List[str] = []
    high_bias: List[str] = []
    rejected: List[Dict[str, str]] = []
    failed: List[str] = []

    candidates = list(candidates)
    logger.info("INGEST_START", extra=_x(run_id, step="start", count=len(candidates)))

    for cand in candidates:
        t_gate = time.perf_counter()
        verdict = evaluate(cand, analyzer)
        if not verdict.passes:
            rejected.append({"title": cand.title, "reason": verdict.rejection_reason or ""})
            continue
        dims = verdict.dimensions
        minutes = estimate_read_minutes(cand.content)
        article = Article(
            url=cand.url,
            title=cand.title,
            description=cand.description,
            content=cand.content,
            source_name=cand.source_name,
            category_id=cand.category_id,
            topic_tags=list(cand.topic_tags),
            published_at=coerce_datetime(cand.published_at),
            content_quality=dims.content_quality,
            credibility=dims.credibility,
            bias=dims.bias,
            sentiment=dims.sentiment,
            polarization=dims.polarization,
            depth_score=depth_score(minutes, dims.content_quality),
            positivity_score=dims.sentiment,
            estimated_read_minutes=minutes,
        )
        try:
            storage.save_article(article)
        except StorageFailure as e:
            failed.append(cand.title)
            logger.exception("PERSIST_ARTICLE_FAILED", extra=_x(run_id, step="persist", handled=True, error=e.message))
            continue
        accepted.append(article.id)
        if verdict.high_bias:
            high_bias.append(article.id)

        bus.publish(ArticleEvent(
            kind=ARTICLE_PUBLISHED,
            article_id=article.id,
            published_at=coerce_datetime(article.created_at),
            payload=article.card(),
        ))
        logger.info(
            "ARTICLE_ACCEPTED",
            extra=_x(run_id, step="persist", article_id=article.id, high_bias=verdict.high_bias, elapsed_ms=_elapsed_ms(t_gate)),
        )

    logger.info(
        "INGEST_DONE",
        extra=_x(
            run_id,
            step="end",
            accepted=len(accepted),
            rejected=len(rejected),
            high_bias=len(high_bias),
            failed=len(failed),
            total_elapsed_ms=_elapsed_ms(t0),
        ),
    )
    return {"accepted": accepted, "rejected": rejected, "high_bias": high_bias, "failed": failed}


def process_feedback(
    user_id: Optional[str],
    article_id: Optional[str],
    feedback_type: str,
    value: Optional[float] = None,
    storage: Optional[Storage] = None,
    locks: Optional[UserLocks] = None,
) -> ReadingPattern:
    """
    The single feedback ingress. Validates, then applies the update rule under
    the user's lock in one transaction. The caller schedules re-scoring.
    """
    if not user_id:
        raise ValidationError("user_id is required")
    if not article_id:
        raise ValidationError("article_id is required")
    storage = storage or _storage
    locks = locks or _user_locks

    t0 = time.perf_counter()
    with locks.hold(user_id):
        pattern = storage.record_feedback(
            user_id,
            article_id,
            feedback_type,
            value,
            INTERACTION_VALUE.get(feedback_type, 0.0),
            lambda current, article: apply_feedback(current, article, feedback_type),
        )
    logger.info(
        "FEEDBACK_APPLIED",
        extra={
            "user_id": user_id,
            "article_id": article_id,
            "feedback_type": feedback_type,
            "engagement": round(pattern.engagement_score, 3),
            "bias_tolerance": round(pattern.bias_tolerance, 3),
            "elapsed_ms": _elapsed_ms(t0),
        },
    )
    return pattern


def process_mood(
    user_id: Optional[str], text: str, emoji: str = "", tags: Sequence[str] = (), storage: Optional[Storage] = None,
) -> MoodProfile:
    """Derive a fresh profile; for signed-in users it supersedes the stored one."""
    storage = storage or _storage
    profile = derive_mood_profile(text, emoji, tags)
    if user_id:
        storage.save_mood_state(user_id, text, emoji, list(tags), profile.model_dump())
    logger.info("MOOD_PROCESSED", extra={"user_id": user_id, "tone_words": profile.tone_words})
    return profile


def save_mood_preset(
    user_id: Optional[str], name: str, profile: Optional[Dict[str, Any]] = None, storage: Optional[Storage] = None,
) -> MoodPreset:
    if not user_id:
        raise ValidationError("user_id is required")
    if not name.strip():
        raise ValidationError("preset name is required")
    storage = storage or _storage
    if profile is None:
        state = storage.get_mood_state(user_id)
        profile = state.profile if state else None
    filled = MoodProfile.from_stored(profile)
    return storage.save_mood_preset(user_id, name.strip(), filled.model_dump())


def list_mood_presets(user_id: str, storage: Optional[Storage] = None) -> List[Dict[str, Any]]:
    storage = storage or _storage
    return [
        {
            "id": p.id,
            "name": p.name,
            "profile": MoodProfile.from_stored(p.profile).model_dump(),
            "created_at": p.created_at.isoformat() if isinstance(p.created_at, datetime) else p.created_at,
        }
        for p in storage.list_mood_presets(user_id)
    ]


def build_digest(article_ids: Sequence[str], storage: Optional[Storage] = None) -> DigestSummary:
    if not article_ids:
        raise ValidationError("article_ids must not be empty")
    storage = storage or _storage
    found = storage.articles_by_id(article_ids)
    ordered = [found[i] for i in article_ids if i in found]
    t0 = time.perf_counter()
    digest = summarize(ordered)
    logger.info("DIGEST_BUILT", extra={"requested": len(article_ids), "found": len(ordered), "elapsed_ms": _elapsed_ms(t0)})
    return digest
