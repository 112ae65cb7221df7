import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy import distinct, func, or_, select, update
from sqlalchemy.orm import Session

from app.keywords import normalize_keywords
from app.models import INTERACTION_TYPES, Article, Interaction
from app.profile import InteractionContext
from app.schemas import ArticleIngest

logger = logging.getLogger(__name__)


class InvalidInteractionError(ValueError):
    """An interaction type outside INTERACTION_TYPES."""


class ArticleStore:
    """
    Storage collaborator for the recommendation engine.

    Wraps one SQLAlchemy session; the caller opens and closes it. Article
    keywords are normalized on write but handed back as stored; the
    scoring code parses them per record so one malformed row only costs
    that row its keyword signal.
    """

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    def get_article_by_id(self, article_id: int) -> Optional[Article]:
        return self.db.get(Article, article_id)

    def get_candidate_articles(self, since: datetime) -> List[Article]:
        """Articles published since the given time; undated ones count by stored_at."""
        stmt = select(Article).where(
            or_(
                Article.published_at >= since,
                (Article.published_at.is_(None)) & (Article.stored_at >= since),
            )
        )
        return list(self.db.scalars(stmt))

    def get_similar_candidates(self, article: Article, since: datetime) -> List[Article]:
        """Same-category articles published since the given time, excluding the seed."""
        stmt = select(Article).where(
            Article.feed_category == article.feed_category,
            Article.published_at >= since,
            Article.id != article.id,
        )
        return list(self.db.scalars(stmt))

    def get_articles(
        self,
        category: Optional[str] = None,
        feed_title: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        sort: str = "stored_at",
        limit: int = 50,
        offset: int = 0,
    ) -> List[Article]:
        """Filtered listing, newest first. date_from/date_to bound stored_at."""
        stmt = select(Article)
        if category:
            stmt = stmt.where(Article.feed_category == category)
        if feed_title:
            stmt = stmt.where(Article.feed_title == feed_title)
        if date_from:
            stmt = stmt.where(Article.stored_at >= date_from)
        if date_to:
            stmt = stmt.where(Article.stored_at < date_to)

        order_column = Article.published_at if sort == "published_at" else Article.stored_at
        stmt = stmt.order_by(order_column.desc(), Article.id.desc()).limit(limit).offset(offset)
        return list(self.db.scalars(stmt))

    def list_categories(self) -> List[str]:
        stmt = select(distinct(Article.feed_category)).order_by(Article.feed_category)
        return list(self.db.scalars(stmt))

    def count_articles_since(self, since: datetime) -> int:
        stmt = select(func.count(Article.id)).where(Article.stored_at >= since)
        return self.db.scalar(stmt) or 0

    def save_article(self, article: ArticleIngest, max_keywords: int = None) -> Article:
        """
        Insert an article, or update the stored copy if its guid is already known.
        The guid falls back to the link; keywords are normalized on the way in.
        view_count is never touched here.
        """
        guid = article.guid or article.link
        existing = None
        if guid:
            existing = self.db.scalars(select(Article).where(Article.guid == guid)).first()

        db_article = existing or Article(guid=guid, view_count=0)
        db_article.title = article.title
        db_article.link = article.link
        db_article.description = article.description
        db_article.extracted_content = article.extracted_content
        db_article.feed_title = article.feed_title
        db_article.feed_category = article.feed_category
        db_article.published_at = _as_utc(article.published_at)
        db_article.keywords = normalize_keywords(article.keywords, max_keywords)

        if existing is None:
            self.db.add(db_article)
        self.db.commit()
        return db_article

    # ------------------------------------------------------------------
    # View counts
    # ------------------------------------------------------------------

    def increment_view_counts(self, article_ids: Iterable[int]) -> None:
        """Add one view to each article in a single UPDATE and a single commit."""
        ids = list(article_ids)
        if not ids:
            return
        self.db.execute(
            update(Article)
            .where(Article.id.in_(ids))
            .values(view_count=Article.view_count + 1)
            .execution_options(synchronize_session="evaluate")
        )
        self.db.commit()

    def increment_view_count(self, article_id: int) -> None:
        self.increment_view_counts([article_id])

    # ------------------------------------------------------------------
    # Interactions
    # ------------------------------------------------------------------

    def record_interaction(self, article_id: int, interaction_type: str) -> Interaction:
        """
        Append one interaction.

        Raises:
            InvalidInteractionError: type is not click, thumbs_up or thumbs_down
        """
        if interaction_type not in INTERACTION_TYPES:
            raise InvalidInteractionError(f"Invalid interaction type: {interaction_type!r}")

        interaction = Interaction(article_id=article_id, interaction_type=interaction_type)
        self.db.add(interaction)
        self.db.commit()
        logger.info(f"Recorded {interaction_type} on article {article_id}")
        return interaction

    def _interaction_query(self):
        return (
            select(
                Interaction.article_id,
                Interaction.interaction_type,
                Interaction.created_at,
                Article.keywords,
                Article.feed_title,
                Article.feed_category,
            )
            .join(Article, Article.id == Interaction.article_id)
            .order_by(Interaction.id)
        )

    def list_interactions_with_context(self) -> List[InteractionContext]:
        """The full interaction history joined with each article's keywords, source and category."""
        rows = self.db.execute(self._interaction_query()).all()
        return [InteractionContext(*row) for row in rows]

    def list_interactions_for(self, article_ids: Iterable[int]) -> Dict[int, List[InteractionContext]]:
        """Interaction history of the given articles, grouped by article id."""
        ids = list(article_ids)
        grouped: Dict[int, List[InteractionContext]] = defaultdict(list)
        if not ids:
            return grouped
        rows = self.db.execute(self._interaction_query().where(Interaction.article_id.in_(ids))).all()
        for row in rows:
            grouped[row.article_id].append(InteractionContext(*row))
        return grouped

    def interaction_stats(self, since: datetime) -> List[dict]:
        """Per-type interaction count and number of distinct articles since the given time."""
        stmt = (
            select(
                Interaction.interaction_type,
                func.count(Interaction.id),
                func.count(distinct(Interaction.article_id)),
            )
            .where(Interaction.created_at >= since)
            .group_by(Interaction.interaction_type)
            .order_by(Interaction.interaction_type)
        )
        return [
            {"interaction_type": itype, "count": count, "unique_articles": unique}
            for itype, count, unique in self.db.execute(stmt).all()
        ]


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the offset on write, so store everything as UTC
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc)
