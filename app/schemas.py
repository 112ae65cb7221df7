from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import List, Optional

from app.keywords import safe_parse_keywords


class ArticleIngest(BaseModel):
    """Shape accepted by /ingest and produced by the RSS fetcher."""
    guid: Optional[str] = None
    title: str
    link: Optional[str] = None
    description: Optional[str] = None
    extracted_content: Optional[str] = None
    feed_title: str
    feed_category: str
    published_at: Optional[datetime] = None
    keywords: List[str] = Field(default_factory=list)


class ArticleResponse(BaseModel):
    """An article as stored, without scoring fields."""
    id: int
    title: str
    link: Optional[str] = None
    description: Optional[str] = None
    extracted_content: Optional[str] = None
    feed_title: str
    feed_category: str
    published_at: Optional[datetime] = None
    stored_at: Optional[datetime] = None
    keywords: Optional[List[str]] = None
    view_count: int = 0

    @field_validator("keywords", mode="before")
    @classmethod
    def _tolerate_bad_keywords(cls, value):
        return safe_parse_keywords(value, "response") if value is not None else None

    # Allows Pydantic to read data directly from SQLAlchemy model instances
    model_config = ConfigDict(from_attributes=True)


class ScoredArticleResponse(ArticleResponse):
    """
    A recommended article with every score component attached.
    Scores are null when the user has no profile yet and the page is plain recency order.
    """
    keyword_score: Optional[float] = None
    source_score: Optional[float] = None
    category_score: Optional[float] = None
    recency_score: Optional[float] = None
    interaction_score: Optional[float] = None
    just_in_boost: Optional[float] = None
    view_fatigue: Optional[float] = None
    keyword_match_count: Optional[int] = None
    total_score: Optional[float] = None


class SimilarArticleResponse(ArticleResponse):
    similarity: float
    interaction_score: float
    score: float


class InteractionCreate(BaseModel):
    # Validated by the storage layer so an unknown type is a 400, not a 422
    type: str


class WeightedName(BaseModel):
    name: str
    weight: float


class ProfileResponse(BaseModel):
    keywords: List[WeightedName]
    sources: List[WeightedName]
    categories: List[WeightedName]
