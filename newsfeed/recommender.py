# newsfeed/recommender.py
"""
Scoring passes over a storage snapshot.

Content and collaborative passes are pure and run concurrently in worker
threads; the blend waits for both. One pass per user+algorithm may be in
flight at a time: a redundant trigger returns None instead of queueing.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from . import blender, collaborative, config, mood, ranker
from .errors import StorageFailure
from .feed import Fetcher, FeedItem
from .guards import InFlightGuard
from .logging_setup import get_logger
from .models import Article, Interaction, ReadingPattern
from .profiles import new_reading_pattern, topic_weights
from .schema import MoodProfile, RecommendationScore
from .store import ArticleFilter, Storage
from .utils import coerce_datetime, utc_now

logger = get_logger("newsfeed.recommender")

ANONYMOUS = "anonymous"
FALLBACK_LIMIT = 100

# candidate prefilter; looser than the content scorer's own baseline
PREFILTER_MIN_QUALITY = 0.4
PREFILTER_MIN_CREDIBILITY = 0.3
PREFILTER_MAX_BIAS = 0.8

ALGORITHMS = {
    "hybrid": "hybrid",
    "content": "content-based",
    "collaborative": "collaborative",
}


@dataclass
class Snapshot:
    user_id: Optional[str]
    pattern: ReadingPattern
    candidates: List[Article]
    exclude_ids: set = field(default_factory=set)
    topic_weights: Dict[str, float] = field(default_factory=dict)
    peers: List[ReadingPattern] = field(default_factory=list)
    peer_interactions: List[Interaction] = field(default_factory=list)


class Recommender:
    def __init__(self, storage: Optional[Storage] = None, guard: Optional[InFlightGuard] = None):
        self.storage = storage or Storage()
        self.guard = guard or InFlightGuard()

    # ---------- candidates ----------

    def candidates(
        self,
        since: Optional[datetime] = None,
        muted_topics: Sequence[str] = (),
        muted_sources: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> List[Article]:
        """
        Articles from the recent window that clear the prefilter. `since` is
        clamped to the window; without it an empty window falls back to the
        latest articles so a quiet news day still has a feed.
        """
        now = now or utc_now()
        window_start = now - timedelta(hours=config.CANDIDATE_WINDOW_HOURS)
        since_dt = coerce_datetime(since)
        flt = ArticleFilter(
            since=max(since_dt, window_start) if since_dt else window_start,
            min_quality=PREFILTER_MIN_QUALITY,
            min_credibility=PREFILTER_MIN_CREDIBILITY,
            max_bias=PREFILTER_MAX_BIAS,
            exclude_topics=tuple(muted_topics),
            exclude_sources=tuple(muted_sources),
            limit=config.CANDIDATE_LIMIT,
        )
        rows = self.storage.query_articles(flt)
        if not rows and since_dt is None:
            rows = self.storage.query_articles(ArticleFilter(
                exclude_topics=tuple(muted_topics), exclude_sources=tuple(muted_sources), limit=FALLBACK_LIMIT,
            ))
            logger.info("CANDIDATE_FALLBACK", extra={"count": len(rows)})
        return rows

    def snapshot(
        self,
        user_id: Optional[str],
        muted_topics: Sequence[str] = (),
        muted_sources: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> Snapshot:
        now = now or utc_now()
        candidates = self.candidates(None, muted_topics, muted_sources, now)
        if not user_id:
            return Snapshot(user_id=None, pattern=new_reading_pattern(ANONYMOUS), candidates=candidates)

        pattern = self.storage.get_reading_pattern(user_id) or new_reading_pattern(user_id)
        interactions = self.storage.query_interactions(user_id, config.INTERACTION_HISTORY_LIMIT)
        # already-seen articles are excluded by id here; the feed watermark is a separate concern
        exclude_ids = {it.article_id for it in interactions}
        history = self.storage.articles_by_id(exclude_ids) if exclude_ids else {}

        window = collaborative.SIMILARITY_WINDOW
        patterns = self.storage.query_reading_patterns(pattern.engagement_score - window, pattern.engagement_score + window)
        peer_ids = collaborative.find_similar_users(user_id, pattern, patterns)
        peer_interactions = self.storage.query_interactions_for_users(peer_ids)

        return Snapshot(
            user_id=user_id,
            pattern=pattern,
            candidates=candidates,
            exclude_ids=exclude_ids,
            topic_weights=topic_weights(interactions, history, now),
            peers=patterns,
            peer_interactions=peer_interactions,
        )

    # ---------- passes ----------

    async def recommend(
        self,
        user_id: Optional[str],
        algorithm: str = "hybrid",
        muted_topics: Sequence[str] = (),
        muted_sources: Sequence[str] = (),
    ) -> Optional[List[RecommendationScore]]:
        label = ALGORITHMS.get(algorithm, algorithm)
        key = (user_id or ANONYMOUS, label)
        if not self.guard.try_claim(key):
            logger.info("RECOMMEND_SUPPRESSED", extra={"user_id": user_id, "algorithm": label})
            return None
        t0 = time.perf_counter()
        try:
            snap = await asyncio.to_thread(self.snapshot, user_id, muted_topics, muted_sources)
            now = utc_now()
            content_task = asyncio.to_thread(
                ranker.rank, snap.candidates, snap.pattern, snap.exclude_ids, snap.topic_weights, now,
            )
            if snap.user_id and label != "content-based":
                collab_task = asyncio.to_thread(
                    collaborative.score, snap.user_id, snap.pattern, snap.peers, snap.peer_interactions, snap.exclude_ids,
                )
                content_scores, collab_scores = await asyncio.gather(content_task, collab_task)
                # peer likes only count for articles that cleared the window, prefilter and mutes
                candidate_ids = {a.id for a in snap.candidates}
                collab_scores = [s for s in collab_scores if s.article_id in candidate_ids]
            else:
                content_scores, collab_scores = await content_task, []

            if label == "content-based" or not snap.user_id:
                result = content_scores
            elif label == "collaborative":
                result = collab_scores[: blender.TOP_N]
            else:
                result = blender.blend(content_scores, collab_scores)

            if snap.user_id:
                self._persist(snap.user_id, label, result)
            logger.info(
                "RECOMMEND_DONE",
                extra={
                    "user_id": user_id,
                    "algorithm": label,
                    "candidates": len(snap.candidates),
                    "content": len(content_scores),
                    "collaborative": len(collab_scores),
                    "returned": len(result),
                    "elapsed_ms": round((time.perf_counter() - t0) * 1000),
                },
            )
            return result
        finally:
            self.guard.release(key)

    async def recommend_by_mood(
        self,
        user_id: Optional[str],
        profile: Optional[MoodProfile] = None,
        rng: Optional[mood.RandomSource] = None,
    ) -> Optional[List[RecommendationScore]]:
        key = (user_id or ANONYMOUS, "mood-based")
        if not self.guard.try_claim(key):
            logger.info("RECOMMEND_SUPPRESSED", extra={"user_id": user_id, "algorithm": "mood-based"})
            return None
        try:
            if profile is None:
                state = self.storage.get_mood_state(user_id) if user_id else None
                profile = MoodProfile.from_stored(state.profile if state else None)
            articles = await asyncio.to_thread(self.candidates)
            result = await asyncio.to_thread(blender.mood_ranked, articles, profile, rng)
            if user_id:
                self._persist(user_id, "mood-based", result)
            logger.info("MOOD_RECOMMEND_DONE", extra={"user_id": user_id, "candidates": len(articles), "returned": len(result)})
            return result
        finally:
            self.guard.release(key)

    async def rescore(self, user_id: str) -> None:
        """Fire-and-forget pass scheduled after feedback; failures are logged, never raised."""
        try:
            await self.recommend(user_id)
        except Exception as e:
            logger.exception("RESCORE_FAILED", extra={"handled": True, "user_id": user_id, "error": type(e).__name__})

    def stored(self, user_id: str, algorithm: str = "hybrid") -> List[RecommendationScore]:
        return self.storage.load_recommendations(user_id, ALGORITHMS.get(algorithm, algorithm))

    def _persist(self, user_id: str, label: str, result: List[RecommendationScore]) -> None:
        try:
            self.storage.replace_recommendations(user_id, label, result)
        except StorageFailure:
            # stored lists are a cache of this pass; the fresh result still goes out
            logger.warning("RECOMMEND_PERSIST_SKIPPED", extra={"handled": True, "user_id": user_id, "algorithm": label})

    # ---------- feed ----------

    def feed_fetcher(self, user_id: Optional[str]) -> Fetcher:
        """
        Fetcher for a FeedSession: items ingested strictly after `since`, newest first.

        Feed items are keyed on `created_at` (when the article entered the
        system), the same column the candidate query filters on, so a story
        its source back-dated still arrives after the watermark has passed
        its `published_at`.
        """

        async def fetch(since: Optional[datetime]) -> List[FeedItem]:
            articles = await asyncio.to_thread(self.candidates, since)
            since_dt = coerce_datetime(since)
            items = [FeedItem(a.id, coerce_datetime(a.created_at), a.card()) for a in articles]
            if since_dt is not None:
                items = [i for i in items if i.timestamp > since_dt]
            return items

        return fetch
