from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import as_unit_float, dedupe_keep_order

Algorithm = Literal["content-based", "collaborative", "hybrid", "mood-based"]
FeedbackType = Literal["like", "dislike", "bookmark", "share", "hide", "report"]

MAX_REASONS = 6


# ---------- Value objects produced by the core ----------

class QualityDimensions(BaseModel):
    """Scores from the analysis collaborator. Every field is clamped to [0, 1]."""
    model_config = ConfigDict(frozen=True)

    toxicity: float = 0.2
    bias: float = 0.4
    sensationalism: float = 0.3
    factuality: float = 0.7
    content_quality: float = 0.6
    credibility: float = 0.7
    sentiment: float = 0.5
    polarization: float = 0.3
    explanations: List[str] = Field(default_factory=list)

    @field_validator(
        "toxicity", "bias", "sensationalism", "factuality",
        "content_quality", "credibility", "sentiment", "polarization",
        mode="before",
    )
    @classmethod
    def _clamp(cls, v, info):
        return as_unit_float(v, cls.model_fields[info.field_name].default)

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "QualityDimensions":
        """Accepts analyzer output keyed either `toxicity` or `toxicity_score`; missing keys take defaults."""
        raw = raw if isinstance(raw, dict) else {}
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            if name == "explanations":
                continue
            value = raw.get(name, raw.get(f"{name}_score"))
            if value is not None:
                values[name] = value
        explanations = raw.get("explanations")
        if isinstance(explanations, list):
            values["explanations"] = [str(e) for e in explanations]
        return cls(**values)


class QualityVerdict(BaseModel):
    passes: bool
    rejection_reason: Optional[str] = None
    dimensions: Optional[QualityDimensions] = None
    high_bias: bool = False


NEUTRAL_TOPIC_BIASES: Dict[str, float] = {
    "AI": 0.5, "Politics": 0.4, "Technology": 0.6, "Health": 0.5,
    "Business": 0.4, "Sports": 0.3, "Entertainment": 0.4,
}


class MoodProfile(BaseModel):
    """
    Transient reading mood derived from one mood statement.

    Missing or malformed fields are filled from the neutral profile, so stored
    blobs written by older versions (or half-valid LLM output) always load.
    """
    model_config = ConfigDict(frozen=True)

    want_depth: float = 0.5
    positivity_pref: float = 0.6
    length_tolerance: float = 0.5
    energy_level: float = 0.5
    curiosity_level: float = 0.5
    topic_biases: Dict[str, float] = Field(default_factory=lambda: dict(NEUTRAL_TOPIC_BIASES))
    tone_words: List[str] = Field(default_factory=lambda: ["neutral"])

    @field_validator("want_depth", "positivity_pref", "length_tolerance", "energy_level", "curiosity_level", mode="before")
    @classmethod
    def _clamp(cls, v, info):
        return as_unit_float(v, cls.model_fields[info.field_name].default)

    @field_validator("topic_biases", mode="before")
    @classmethod
    def _clamp_biases(cls, v):
        if not isinstance(v, dict) or not v:
            return dict(NEUTRAL_TOPIC_BIASES)
        return {str(k): as_unit_float(b, 0.5) for k, b in v.items()}

    @field_validator("tone_words", mode="before")
    @classmethod
    def _tone_words(cls, v):
        if not isinstance(v, list):
            return ["neutral"]
        return dedupe_keep_order(v) or ["neutral"]

    @classmethod
    def from_stored(cls, raw: Optional[Dict[str, Any]]) -> "MoodProfile":
        raw = raw if isinstance(raw, dict) else {}
        return cls(**{k: v for k, v in raw.items() if k in cls.model_fields and v is not None})


class RecommendationScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    article_id: str
    score: float
    reasons: List[str] = Field(default_factory=list)
    algorithm: Algorithm

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        return as_unit_float(v, 0.0)

    @field_validator("reasons", mode="before")
    @classmethod
    def _reasons(cls, v):
        return dedupe_keep_order(v or [])[:MAX_REASONS]

    @property
    def display_score(self) -> int:
        return round(self.score * 100)


class DigestSummary(BaseModel):
    summary: str
    highlights: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    article_count: int = 0


# ---------- Request bodies ----------

class ArticleCandidate(BaseModel):
    title: str
    content: str = ""
    url: str = ""
    source_name: str = ""
    description: str = ""
    category_id: Optional[str] = None
    topic_tags: List[str] = Field(default_factory=list)
    published_at: Optional[datetime] = None


class FeedbackIn(BaseModel):
    user_id: Optional[str] = None     # used only when no X-User-Id header is sent
    article_id: Optional[str] = None
    feedback_type: FeedbackType
    value: Optional[float] = None


class MoodIn(BaseModel):
    text: str = ""
    emoji: str = ""
    context_tags: List[str] = Field(default_factory=list)


class MoodPresetIn(BaseModel):
    name: str
    profile: Optional[Dict[str, Any]] = None  # defaults to the user's current mood


class DigestIn(BaseModel):
    article_ids: List[str]


class ScrollIn(BaseModel):
    offset_px: float


class LocalEditIn(BaseModel):
    changes: Dict[str, Any]
