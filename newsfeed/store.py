"""
store.py
========
The database gateway and the storage collaborator used by the scoring core.

1) Creates the SQLModel engine and tables.
2) Provides `get_session()` for a unit of work.
3) `Storage` wraps the handful of filtered queries and writes the core needs.
   Read paths log failures and return empty results so callers can show "no data";
   write paths roll back and raise StorageFailure so no partial update survives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine, select, col

from .config import DB_FILE
from .errors import StorageFailure, ValidationError
from .logging_setup import get_logger
from .models import (
    Article, FeedbackRecord, Interaction, MoodPreset, MoodState,
    ReadingPattern, UserRecommendation,
)
from .schema import RecommendationScore
from .utils import utc_now

logger = get_logger("newsfeed.store")

DB_URL = f"sqlite:///{DB_FILE}"

# check_same_thread=False: sync routes and to_thread() scoring share the engine across threads.
engine = create_engine(DB_URL, echo=False, connect_args={"check_same_thread": False})


def init_db() -> None:
    """Create missing tables. Safe to call on every startup; never drops data."""
    from . import models  # noqa: F401  (import just to register models with SQLModel)

    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """
    Open a database Session bound to our engine.

    Usage pattern:
      with get_session() as session:
          session.add(obj)
          session.commit()
    """
    return Session(engine, expire_on_commit=False)


@dataclass
class ArticleFilter:
    """Simple equality/range filter over articles. Unset fields do not filter."""
    ids: Optional[Sequence[str]] = None
    since: Optional[datetime] = None          # created_at strictly after
    min_quality: Optional[float] = None
    min_credibility: Optional[float] = None
    max_bias: Optional[float] = None
    exclude_ids: Sequence[str] = field(default_factory=tuple)
    exclude_sources: Sequence[str] = field(default_factory=tuple)
    exclude_topics: Sequence[str] = field(default_factory=tuple)
    limit: Optional[int] = None


POSITIVE_INTERACTIONS = ("like", "bookmark", "share")


class Storage:
    def __init__(self, session_factory: Callable[[], Session] = get_session):
        self._session_factory = session_factory

    # ---------- reads: degrade to empty ----------

    def query_articles(self, flt: ArticleFilter) -> List[Article]:
        try:
            with self._session_factory() as s:
                stmt = select(Article)
                if flt.ids is not None:
                    if not flt.ids:
                        return []
                    stmt = stmt.where(col(Article.id).in_(list(flt.ids)))
                if flt.since is not None:
                    stmt = stmt.where(Article.created_at > flt.since)
                if flt.min_quality is not None:
                    stmt = stmt.where(Article.content_quality >= flt.min_quality)
                if flt.min_credibility is not None:
                    stmt = stmt.where(Article.credibility >= flt.min_credibility)
                if flt.max_bias is not None:
                    stmt = stmt.where(Article.bias <= flt.max_bias)
                if flt.exclude_ids:
                    stmt = stmt.where(col(Article.id).not_in(list(flt.exclude_ids)))
                if flt.exclude_sources:
                    stmt = stmt.where(col(Article.source_name).not_in(list(flt.exclude_sources)))
                stmt = stmt.order_by(col(Article.created_at).desc())
                rows = list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            logger.exception("QUERY_ARTICLES_FAILED", extra={"handled": True, "error": type(e).__name__})
            return []

        # tags live in a JSON column, so muted topics are filtered here rather than in SQL
        if flt.exclude_topics:
            muted = {t.lower() for t in flt.exclude_topics}
            rows = [a for a in rows if not muted.intersection(t.lower() for t in (a.topic_tags or []))]
        if flt.limit is not None:
            rows = rows[: flt.limit]
        return rows

    def articles_by_id(self, ids: Iterable[str]) -> Dict[str, Article]:
        return {a.id: a for a in self.query_articles(ArticleFilter(ids=list(ids)))}

    def query_interactions(self, user_id: str, limit: int = 200) -> List[Interaction]:
        try:
            with self._session_factory() as s:
                stmt = (
                    select(Interaction)
                    .where(Interaction.user_id == user_id)
                    .order_by(col(Interaction.created_at).desc())
                    .limit(limit)
                )
                return list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            logger.exception("QUERY_INTERACTIONS_FAILED", extra={"handled": True, "user_id": user_id, "error": type(e).__name__})
            return []

    def query_interactions_for_users(
        self, user_ids: Sequence[str], types: Sequence[str] = POSITIVE_INTERACTIONS
    ) -> List[Interaction]:
        if not user_ids:
            return []
        try:
            with self._session_factory() as s:
                stmt = select(Interaction).where(
                    col(Interaction.user_id).in_(list(user_ids)),
                    col(Interaction.interaction_type).in_(list(types)),
                )
                return list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            logger.exception("QUERY_PEER_INTERACTIONS_FAILED", extra={"handled": True, "error": type(e).__name__})
            return []

    def query_reading_patterns(self, min_engagement: float, max_engagement: float) -> List[ReadingPattern]:
        try:
            with self._session_factory() as s:
                stmt = select(ReadingPattern).where(
                    ReadingPattern.engagement_score >= min_engagement,
                    ReadingPattern.engagement_score <= max_engagement,
                )
                return list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            logger.exception("QUERY_PATTERNS_FAILED", extra={"handled": True, "error": type(e).__name__})
            return []

    def get_reading_pattern(self, user_id: str) -> Optional[ReadingPattern]:
        try:
            with self._session_factory() as s:
                return s.get(ReadingPattern, user_id)
        except SQLAlchemyError as e:
            logger.exception("GET_PATTERN_FAILED", extra={"handled": True, "user_id": user_id, "error": type(e).__name__})
            return None

    def get_mood_state(self, user_id: str) -> Optional[MoodState]:
        try:
            with self._session_factory() as s:
                return s.get(MoodState, user_id)
        except SQLAlchemyError as e:
            logger.exception("GET_MOOD_FAILED", extra={"handled": True, "user_id": user_id, "error": type(e).__name__})
            return None

    def list_mood_presets(self, user_id: str) -> List[MoodPreset]:
        try:
            with self._session_factory() as s:
                stmt = select(MoodPreset).where(MoodPreset.user_id == user_id).order_by(col(MoodPreset.created_at))
                return list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            logger.exception("LIST_PRESETS_FAILED", extra={"handled": True, "user_id": user_id, "error": type(e).__name__})
            return []

    def load_recommendations(self, user_id: str, algorithm: str) -> List[RecommendationScore]:
        try:
            with self._session_factory() as s:
                stmt = (
                    select(UserRecommendation)
                    .where(UserRecommendation.user_id == user_id, UserRecommendation.algorithm == algorithm)
                    .order_by(col(UserRecommendation.rank))
                )
                rows = list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            logger.exception("LOAD_RECS_FAILED", extra={"handled": True, "user_id": user_id, "error": type(e).__name__})
            return []
        return [
            RecommendationScore(article_id=r.article_id, score=r.score, reasons=r.reasons or [], algorithm=r.algorithm)
            for r in rows
        ]

    # ---------- writes: surface failures ----------

    def _write(self, op: str, fn: Callable[[Session], Any], **log_fields) -> Any:
        try:
            with self._session_factory() as s:
                try:
                    result = fn(s)
                    s.commit()
                    return result
                except SQLAlchemyError:
                    s.rollback()
                    raise
        except SQLAlchemyError as e:
            logger.exception(f"{op}_FAILED", extra={"handled": False, "error": type(e).__name__, **log_fields})
            raise StorageFailure(f"{op.lower()} failed") from e

    def save_article(self, article: Article) -> Article:
        def _save(s: Session) -> Article:
            s.add(article)
            s.flush()
            return article
        return self._write("SAVE_ARTICLE", _save, article_id=article.id)

    def upsert_reading_pattern(self, user_id: str, patch: Dict[str, Any]) -> ReadingPattern:
        return self._write("UPSERT_PATTERN", lambda s: _apply_pattern_patch(s, user_id, patch), user_id=user_id)

    def record_interaction(self, user_id: str, article_id: str, interaction_type: str, value: float = 1.0) -> Interaction:
        def _record(s: Session) -> Interaction:
            it = Interaction(user_id=user_id, article_id=article_id, interaction_type=interaction_type, interaction_value=value)
            s.add(it)
            return it
        return self._write("RECORD_INTERACTION", _record, user_id=user_id, article_id=article_id)

    def record_feedback(
        self,
        user_id: str,
        article_id: str,
        feedback_type: str,
        value: Optional[float],
        interaction_value: float,
        compute_patch: Callable[[Optional[ReadingPattern], Article], Dict[str, Any]],
    ) -> ReadingPattern:
        """
        One transaction: feedback row, interaction row, article engagement and the
        reading-pattern patch commit together or not at all.
        """
        def _tx(s: Session) -> ReadingPattern:
            article = s.get(Article, article_id)
            if article is None:
                raise ValidationError(f"unknown article {article_id}")
            current = s.get(ReadingPattern, user_id)
            patch = compute_patch(current, article)

            s.add(FeedbackRecord(user_id=user_id, article_id=article_id, feedback_type=feedback_type, value=value))
            s.add(Interaction(
                user_id=user_id, article_id=article_id,
                interaction_type=feedback_type, interaction_value=interaction_value,
            ))
            article.engagement_score = max(0.0, (article.engagement_score or 0.0) + interaction_value)
            s.add(article)
            return _apply_pattern_patch(s, user_id, patch)

        return self._write("RECORD_FEEDBACK", _tx, user_id=user_id, article_id=article_id)

    def save_mood_state(self, user_id: str, text: str, emoji: str, tags: List[str], profile: Dict[str, Any]) -> MoodState:
        def _save(s: Session) -> MoodState:
            state = s.get(MoodState, user_id) or MoodState(user_id=user_id)
            state.text, state.emoji = text, emoji
            state.context_tags = list(tags)
            state.profile = dict(profile)
            state.updated_at = utc_now()
            s.add(state)
            return state
        return self._write("SAVE_MOOD", _save, user_id=user_id)

    def save_mood_preset(self, user_id: str, name: str, profile: Dict[str, Any]) -> MoodPreset:
        def _save(s: Session) -> MoodPreset:
            preset = MoodPreset(user_id=user_id, name=name, profile=dict(profile))
            s.add(preset)
            return preset
        return self._write("SAVE_PRESET", _save, user_id=user_id)

    def replace_recommendations(self, user_id: str, algorithm: str, scores: Sequence[RecommendationScore]) -> None:
        def _replace(s: Session) -> None:
            s.exec(delete(UserRecommendation).where(
                UserRecommendation.user_id == user_id, UserRecommendation.algorithm == algorithm,
            ))
            for rank, sc in enumerate(scores):
                s.add(UserRecommendation(
                    user_id=user_id, article_id=sc.article_id, algorithm=algorithm,
                    score=sc.score, reasons=list(sc.reasons), rank=rank,
                ))
        self._write("REPLACE_RECS", _replace, user_id=user_id, algorithm=algorithm)


def _apply_pattern_patch(s: Session, user_id: str, patch: Dict[str, Any]) -> ReadingPattern:
    pattern = s.get(ReadingPattern, user_id) or ReadingPattern(user_id=user_id)
    for key, value in patch.items():
        setattr(pattern, key, value)
    pattern.updated_at = utc_now()
    s.add(pattern)
    s.flush()
    return pattern
