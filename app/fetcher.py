import asyncio
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

import feedparser
from sqlalchemy.orm import Session

from app.config import settings
from app.keywords import normalize_keywords
from app.schemas import ArticleIngest
from app.storage import ArticleStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def strip_html(text: str) -> str:
    """Remove HTML tags from a string, returning clean plain text."""
    return re.sub(r"<[^>]+>", "", text or "").strip()


def parse_date(entry) -> Optional[datetime]:
    """
    Extract a UTC datetime from a feedparser entry.
    Returns None if the entry carries no date; recency then falls back to stored_at.
    """
    parsed = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return None


def entry_keywords(entry, max_keywords: int) -> List[str]:
    """Keywords from the entry's <category> tags, normalized and capped."""
    tags = entry.get("tags") or []
    terms = [tag.get("term") for tag in tags]
    return normalize_keywords((t for t in terms if isinstance(t, str)), max_keywords)


# ---------------------------------------------------------------------------
# Base source: subclass this to add a new feed
# ---------------------------------------------------------------------------

class BaseSource(ABC):
    """
    Abstract base class for all feeds.
    source_name doubles as the article's feed_title, the "source" scoring signal.
    """
    source_name: str
    category: str

    @abstractmethod
    def fetch(self) -> List[ArticleIngest]:
        """Fetch articles and return them as a list of ArticleIngest objects."""
        pass


# ---------------------------------------------------------------------------
# RSS source: shared fetch logic for all RSS-based feeds
# ---------------------------------------------------------------------------

class RSSSource(BaseSource):
    """
    Reusable RSS fetcher. Subclasses only need to set source_name, category and feed_url.
    """
    feed_url: str

    def fetch(self) -> List[ArticleIngest]:
        try:
            feed = feedparser.parse(self.feed_url)
            articles = []

            for entry in feed.entries:
                guid = entry.get("id") or entry.get("link")
                if not guid:
                    logger.warning(f"[{self.source_name}] Skipping entry with no ID or link")
                    continue

                # Full content, when the feed ships it, lives under 'content'
                raw_content = (entry.get("content") or [{}])[0].get("value")

                articles.append(ArticleIngest(
                    guid=guid,
                    title=entry.get("title", "").strip(),
                    link=entry.get("link"),
                    description=strip_html(entry.get("summary", "")) or None,
                    extracted_content=strip_html(raw_content) or None,
                    feed_title=self.source_name,
                    feed_category=self.category,
                    published_at=parse_date(entry),
                    keywords=entry_keywords(entry, settings.MAX_KEYWORDS_PER_ARTICLE),
                ))

            logger.info(f"[{self.source_name}] Fetched {len(articles)} articles")
            return articles

        except Exception as e:
            # Log the error and return an empty list so other feeds are unaffected
            logger.error(f"[{self.source_name}] Failed to fetch: {e}")
            return []


# ---------------------------------------------------------------------------
# Concrete feeds: add new feeds here
# ---------------------------------------------------------------------------

class HackerNewsSource(RSSSource):
    source_name = "Hacker News"
    category = "development"
    feed_url = "https://hnrss.org/frontpage"


class LobstersSource(RSSSource):
    source_name = "Lobsters"
    category = "development"
    feed_url = "https://lobste.rs/rss"


class HackadaySource(RSSSource):
    source_name = "Hackaday"
    category = "diy"
    feed_url = "https://hackaday.com/blog/feed/"


class ArsTechnicaSource(RSSSource):
    source_name = "Ars Technica"
    category = "technology"
    feed_url = "https://feeds.arstechnica.com/arstechnica/index"


# Registry of active feeds: add or remove entries here to enable/disable feeds
SOURCES: List[BaseSource] = [
    HackerNewsSource(),
    LobstersSource(),
    HackadaySource(),
    ArsTechnicaSource(),
]


# ---------------------------------------------------------------------------
# Fetcher service: background loop
# ---------------------------------------------------------------------------

class FetcherService:
    """
    Runs a continuous background loop that fetches all feeds every N seconds
    and stores new articles. Scoring happens at read time, not here.
    """

    def __init__(self, interval_seconds: int = None):
        self.interval_seconds = interval_seconds or settings.FETCH_INTERVAL_SECONDS

    async def run(self, db_factory):
        """
        Entry point for the background task.
        db_factory: callable that returns a new SQLAlchemy Session (e.g. SessionLocal)
        """
        logger.info("FetcherService started: fetching every %ds", self.interval_seconds)
        while True:
            # Blocking network and DB work stays off the event loop
            try:
                await asyncio.to_thread(self.fetch_all, db_factory)
            except Exception as e:
                # A failed cycle (e.g. a locked database) must not end the loop
                logger.error(f"Fetch cycle failed: {e}")
            await asyncio.sleep(self.interval_seconds)

    def fetch_all(self, db_factory) -> int:
        """Fetch from every registered feed and store the results. Returns the number stored."""
        logger.info("Starting fetch cycle")
        stored = 0

        for source in SOURCES:
            articles = source.fetch()  # errors are handled inside fetch()

            if not articles:
                continue

            db: Session = db_factory()
            try:
                store = ArticleStore(db)
                for article in articles:
                    store.save_article(article, settings.MAX_KEYWORDS_PER_ARTICLE)
                    stored += 1
            finally:
                db.close()

        logger.info(f"Fetch cycle complete, stored {stored} articles")
        return stored
