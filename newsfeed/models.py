from typing import Optional, List
from sqlmodel import SQLModel, Field, Column, JSON
from datetime import datetime
import uuid

from .utils import utc_now


def _new_id() -> str:
    return uuid.uuid4().hex


class Article(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    url: str = ""
    title: str
    description: Optional[str] = ""
    content: Optional[str] = ""
    source_name: Optional[str] = ""
    category_id: Optional[str] = Field(default=None, index=True)
    published_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    topic_tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    # quality dimensions, all in [0, 1]
    content_quality: float = 0.6
    credibility: float = 0.7
    bias: float = 0.4
    sentiment: float = 0.5
    polarization: float = 0.3
    # mood-facing dimensions, all in [0, 1]
    depth_score: float = 0.5
    positivity_score: float = 0.5
    engagement_score: float = 0.0
    estimated_read_minutes: float = 3.0

    @property
    def timestamp(self) -> datetime:
        return self.published_at or self.created_at

    def card(self) -> dict:
        """Display fields shipped with feed items and events."""
        return {
            "title": self.title,
            "description": self.description or "",
            "url": self.url,
            "source_name": self.source_name or "",
            "category_id": self.category_id,
            "topic_tags": list(self.topic_tags or []),
            "estimated_read_minutes": self.estimated_read_minutes,
            "published_at": self.published_at.isoformat() if self.published_at else None,
        }


class Interaction(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    article_id: str = Field(index=True)
    interaction_type: str  # view | like | dislike | bookmark | share | hide | report | read_time
    interaction_value: float = 1.0
    created_at: datetime = Field(default_factory=utc_now)


class FeedbackRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    article_id: str
    feedback_type: str
    value: Optional[float] = None
    created_at: datetime = Field(default_factory=utc_now)


class ReadingPattern(SQLModel, table=True):
    user_id: str = Field(primary_key=True)
    category_preferences: dict = Field(default_factory=dict, sa_column=Column(JSON))
    topics_of_interest: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    preferred_sources: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    bias_tolerance: float = 0.7
    sentiment_preference: float = 0.5
    reading_time_preference: Optional[float] = None  # minutes; None = no preference
    engagement_score: float = Field(default=0.5, index=True)
    total_articles_read: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class MoodState(SQLModel, table=True):
    user_id: str = Field(primary_key=True)
    text: str = ""
    emoji: str = ""
    context_tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    profile: dict = Field(default_factory=dict, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=utc_now)


class MoodPreset(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    profile: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now)


class UserRecommendation(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    article_id: str
    algorithm: str = Field(index=True)
    score: float
    reasons: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    rank: int = 0
    created_at: datetime = Field(default_factory=utc_now)
