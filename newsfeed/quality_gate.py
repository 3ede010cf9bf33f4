# newsfeed/quality_gate.py
"""
Hard and soft content filters applied before an article becomes a candidate.

Hard filters are cheap lexical checks that short-circuit with a specific
reason; the analyzer is only consulted once they all pass.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Dict, Optional, Union

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .analysis import analyze_quality
from .logging_setup import get_logger
from .schema import ArticleCandidate, QualityDimensions, QualityVerdict

logger = get_logger("newsfeed.quality_gate")

MIN_BODY_CHARS = 800
MIN_TITLE_CHARS = 10
MAX_CAPS_RATIO = 0.5
MAX_TITLE_EMOJI = 3

TOXICITY_MAX = 0.4
SENSATIONALISM_MAX = 0.65
FACTUALITY_MIN = 0.45
HIGH_BIAS = 0.7

SPAM_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"you won't believe",
        r"shocking",
        r"doctors hate",
        r"one weird trick",
        r"[0-9]+\s+(reasons|ways|things|secrets)",
        r"click here",
        r"sponsored content",
        r"advertisement",
    )
]

ADULT_PATTERNS = [
    re.compile(r"\b(sex|porn|nude|naked|xxx)\b", re.IGNORECASE),
    re.compile(r"\badult content\b", re.IGNORECASE),
]

EMOJI_RE = re.compile(
    "[\U0001F600-\U0001F64F\U0001F300-\U0001F5FF\U0001F680-\U0001F6FF\u2600-\u26FF\u2700-\u27BF]"
)

_url_adapter = TypeAdapter(HttpUrl)

Analyzer = Callable[[str, str, str], Union[QualityDimensions, Dict[str, Any]]]


def _valid_url(url: str) -> bool:
    try:
        _url_adapter.validate_python(url)
    except PydanticValidationError:
        return False
    return True


def hard_filter(title: str, body: str, url: str) -> Optional[str]:
    """Return the rejection reason of the first hard filter hit, else None."""
    if len(body) < MIN_BODY_CHARS:
        return f"Content too short (minimum {MIN_BODY_CHARS} characters)"
    if len(title) < MIN_TITLE_CHARS:
        return "Title too short"
    if not _valid_url(url):
        return "Invalid URL format"
    for pattern in SPAM_PATTERNS:
        if pattern.search(title) or pattern.search(body):
            return "Contains spam/clickbait patterns"
    for pattern in ADULT_PATTERNS:
        if pattern.search(title) or pattern.search(body):
            return "Contains adult/NSFW content"

    letters = [c for c in title if c.isalpha()]
    if len(title) > MIN_TITLE_CHARS and letters:
        caps = sum(1 for c in letters if c.isupper())
        if caps / len(letters) > MAX_CAPS_RATIO:
            return "Excessive capital letters in title"
    if len(EMOJI_RE.findall(title)) > MAX_TITLE_EMOJI:
        return "Too many emojis in title"
    return None


def soft_filter(dims: QualityDimensions) -> Optional[str]:
    if dims.toxicity > TOXICITY_MAX:
        return f"High toxicity score: {dims.toxicity:.2f}"
    if dims.sensationalism > SENSATIONALISM_MAX and dims.factuality < FACTUALITY_MIN:
        return "Sensational content with low factuality"
    return None


def evaluate(candidate: ArticleCandidate, analyzer: Analyzer = analyze_quality) -> QualityVerdict:
    reason = hard_filter(candidate.title, candidate.content, candidate.url)
    if reason:
        logger.info("HARD_FILTER_REJECT", extra={"title": candidate.title[:80], "reason": reason})
        return QualityVerdict(passes=False, rejection_reason=reason)

    try:
        raw = analyzer(candidate.title, candidate.content, candidate.source_name)
    except Exception as e:
        # the gate degrades to defaults rather than failing closed
        logger.exception("ANALYZER_ERROR", extra={"handled": True, "error": type(e).__name__})
        raw = QualityDimensions(explanations=["default scores: analysis failed"])
    dims = raw if isinstance(raw, QualityDimensions) else QualityDimensions.from_raw(raw)

    high_bias = dims.bias > HIGH_BIAS
    reason = soft_filter(dims)
    if reason:
        logger.info("SOFT_FILTER_REJECT", extra={"title": candidate.title[:80], "reason": reason})
        return QualityVerdict(passes=False, rejection_reason=reason, dimensions=dims, high_bias=high_bias)
    return QualityVerdict(passes=True, dimensions=dims, high_bias=high_bias)
