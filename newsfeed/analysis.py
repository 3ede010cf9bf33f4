# newsfeed/analysis.py
"""
OpenAI-backed analysis collaborator.

Three JSON-mode calls:
  - analyze_quality(title, body, source) -> QualityDimensions   (never raises)
  - derive_mood_profile(text, emoji, tags) -> MoodProfile       (neutral on failure)
  - summarize(articles) -> DigestSummary                        (local fallback)

Without OPENAI_API_KEY every call returns its documented default, so the
service runs end to end in dev and tests.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx
from openai import APIStatusError, OpenAI, OpenAIError, RateLimitError

from . import config
from .errors import UpstreamAnalysisFailure, UpstreamQuotaFailure
from .logging_setup import get_logger
from .schema import DigestSummary, MoodProfile, QualityDimensions
from .utils import dedupe_keep_order

logger = get_logger("newsfeed.analysis")

_client: Optional[OpenAI] = None

QUALITY_PROMPT = """
Analyze the following news article for content quality and bias.

TITLE: {title}
SOURCE: {source}
ARTICLE:
{body}

Return strict JSON with scores between 0.0 and 1.0:
  - toxicity_score: 0 clean, 1 toxic/harmful
  - bias_score: 0 neutral/factual, 1 heavily biased
  - sensationalism_score: 0 measured, 1 sensational/clickbait
  - factuality_score: 0 false/misleading, 1 factual/accurate
  - content_quality_score: 0 poor, 1 high quality
  - credibility_score: 0 not credible, 1 highly credible
  - sentiment_score: 0 negative, 0.5 neutral, 1 positive
  - polarization_score: 0 unifying, 1 polarizing
  - explanations: array of short strings
""".strip()

MOOD_PROMPT = """
Derive a reading-mood profile from the user's mood statement.

MOOD: {mood}

Return strict JSON with keys:
  - want_depth, positivity_pref, length_tolerance, energy_level, curiosity_level: numbers 0.0-1.0
  - topic_biases: object mapping topics (AI, Politics, Technology, Health, Business, Sports, Entertainment) to 0.0-1.0
  - tone_words: array of up to 5 words
""".strip()

DIGEST_PROMPT = """
Write a short daily digest of the articles below in plain, non-jargon English.
Avoid hype; stick to facts present in the text.

Return strict JSON with keys:
  - summary: string (80-150 words)
  - highlights: array of up to 5 strings
  - topics: array of up to 5 strings

ARTICLES:
{articles}
""".strip()


def _get_client() -> Optional[OpenAI]:
    global _client
    if _client is not None:
        return _client
    if config.OPENAI_API_KEY:
        _client = OpenAI(
            api_key=config.OPENAI_API_KEY,
            http_client=httpx.Client(timeout=config.OPENAI_TIMEOUT_SECONDS, follow_redirects=True),
        )
        return _client
    return None


def _truncate(s: str, max_chars: int = 2000) -> str:
    return s[:max_chars] if s else ""


def _is_quota_error(e: Exception) -> bool:
    if isinstance(e, RateLimitError):
        return True
    return isinstance(e, APIStatusError) and e.status_code in (402, 429)


def _chat_json(client: OpenAI, prompt: str, temperature: float = 0.3) -> Dict[str, Any]:
    """
    One JSON-mode completion. Quota refusals become UpstreamQuotaFailure,
    everything else (transport, API, malformed JSON) UpstreamAnalysisFailure.
    """
    try:
        resp = client.chat.completions.create(
            model=config.OPENAI_MODEL,
            temperature=temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": "Respond with valid JSON only."},
                {"role": "user", "content": prompt},
            ],
        )
        data = json.loads(resp.choices[0].message.content or "")
    except OpenAIError as e:
        if _is_quota_error(e):
            raise UpstreamQuotaFailure() from e
        raise UpstreamAnalysisFailure(type(e).__name__) from e
    except (ValueError, IndexError, AttributeError) as e:
        raise UpstreamAnalysisFailure("malformed analysis output") from e
    if not isinstance(data, dict):
        raise UpstreamAnalysisFailure("analysis output is not an object")
    return data


def analyze_quality(title: str, body: str, source: str = "") -> QualityDimensions:
    client = _get_client()
    if not client:
        return QualityDimensions(explanations=["default scores: analyzer not configured"])
    prompt = QUALITY_PROMPT.format(title=title, source=source, body=_truncate(body))
    try:
        raw = _chat_json(client, prompt)
    except (UpstreamAnalysisFailure, UpstreamQuotaFailure) as e:
        # ingestion never aborts on the analyzer, quota included
        logger.warning("QUALITY_ANALYSIS_FAILED", extra={"error": type(e).__name__, "title": title[:80]})
        return QualityDimensions(explanations=["default scores: analysis failed"])
    return QualityDimensions.from_raw(raw)


def derive_mood_profile(text: str, emoji: str = "", tags: Sequence[str] = ()) -> MoodProfile:
    """Neutral profile when unconfigured or malformed. Quota failures propagate (user-visible)."""
    mood = " ".join(p for p in (text.strip(), emoji.strip(), f"Tags: {', '.join(tags)}" if tags else "") if p)
    client = _get_client()
    if not client or not mood:
        return MoodProfile()
    try:
        raw = _chat_json(client, MOOD_PROMPT.format(mood=mood), temperature=0.5)
    except UpstreamAnalysisFailure as e:
        logger.warning("MOOD_ANALYSIS_FAILED", extra={"error": e.message})
        return MoodProfile()
    return MoodProfile.from_stored(raw)


def _local_digest(articles: Sequence[Any]) -> DigestSummary:
    titles = [a.title for a in articles if a.title]
    topics = dedupe_keep_order(t for a in articles for t in (a.topic_tags or []))
    return DigestSummary(
        summary=" ".join(titles)[:280],
        highlights=titles[:5],
        topics=topics[:5],
        sources=dedupe_keep_order(a.source_name or "" for a in articles),
        article_count=len(articles),
    )


def summarize(articles: Sequence[Any]) -> DigestSummary:
    """Presentational only; nothing here feeds back into scoring."""
    if not articles:
        return DigestSummary(summary="No articles selected.", article_count=0)

    client = _get_client()
    if not client:
        return _local_digest(articles)

    listing = "\n\n".join(
        f"- {a.title} ({a.source_name or 'unknown'})\n{_truncate(a.content or a.description or '', 1200)}"
        for a in articles
    )
    try:
        raw = _chat_json(client, DIGEST_PROMPT.format(articles=listing), temperature=0.2)
    except UpstreamAnalysisFailure as e:
        logger.exception("DIGEST_SUMMARY_FAILED", extra={"error": e.message})
        return _local_digest(articles)

    local = _local_digest(articles)
    highlights = raw.get("highlights")
    topics = raw.get("topics")
    return DigestSummary(
        summary=str(raw.get("summary") or local.summary).strip(),
        highlights=[str(h) for h in highlights][:5] if isinstance(highlights, list) else local.highlights,
        topics=dedupe_keep_order(str(t) for t in topics)[:5] if isinstance(topics, list) else local.topics,
        sources=local.sources,
        article_count=len(articles),
    )
