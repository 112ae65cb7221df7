from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from datetime import datetime, timezone
from app.database import Base

# The only interaction types the engine knows how to weigh
INTERACTION_TYPES = ("click", "thumbs_up", "thumbs_down")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    guid = Column(String, unique=True, nullable=True)  # RSS GUID, falls back to the link
    title = Column(String, nullable=False)
    link = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    extracted_content = Column(Text, nullable=True)

    # --- Feed context, used as the "source" and "category" scoring signals ---
    feed_title = Column(String, nullable=False)
    feed_category = Column(String, nullable=False)

    published_at = Column(DateTime, nullable=True)  # UTC timestamp from the feed, may be missing
    stored_at = Column(DateTime, default=_utcnow)   # when we received it

    # --- Mutable fields ---
    keywords = Column(JSON, nullable=True)                     # list of lowercase strings
    view_count = Column(Integer, nullable=False, default=0)    # only ever incremented

    __table_args__ = (
        Index("idx_articles_feed", "feed_title", "published_at"),
        Index("idx_articles_category", "feed_category", "published_at"),
        Index("idx_articles_stored", "stored_at"),
    )


class Interaction(Base):
    __tablename__ = "article_interactions"

    # Append-only: rows are never updated or deleted
    id = Column(Integer, primary_key=True, autoincrement=True)
    article_id = Column(Integer, ForeignKey("articles.id"), nullable=False)
    interaction_type = Column(String, nullable=False)  # one of INTERACTION_TYPES
    created_at = Column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("idx_article_interactions", "article_id", "interaction_type"),
    )
