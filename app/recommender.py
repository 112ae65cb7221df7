import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.config import Settings, settings as default_settings
from app.decay import sort_timestamp
from app.models import INTERACTION_TYPES
from app.profile import InteractionContext, UserProfile, build_profile
from app.scorer import ScoreBreakdown, score_article
from app.similarity import SimilarArticle, rank_similar
from app.storage import ArticleStore, InvalidInteractionError

logger = logging.getLogger(__name__)


class ArticleNotFoundError(LookupError):
    pass


@dataclass
class Recommendation:
    article: object
    breakdown: Optional[ScoreBreakdown]  # None when served in plain recency order


class RecommendationService:
    """
    Turns the interaction history into a ranked page of articles.

    Every call rebuilds the profile from scratch: O(total interactions)
    per request, no cache. Serving a page counts as a view for every
    article on it.
    """

    def __init__(self, store: ArticleStore, config: Settings = default_settings):
        self.store = store
        self.config = config

    def _load_history(self) -> List[InteractionContext]:
        # A storage failure degrades to "no history" so callers fall back to recency
        try:
            return self.store.list_interactions_with_context()
        except SQLAlchemyError as e:
            logger.error(f"Could not read interaction history, using an empty profile: {e}")
            return []

    def get_profile(self, now: Optional[datetime] = None) -> UserProfile:
        """Build the profile from the full interaction history."""
        return build_profile(self._load_history(), now=now, config=self.config)

    def get_recommended_articles(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> List[Recommendation]:
        """
        Score every candidate in the recent window, sort, slice one page,
        and count a view for each article on that page.

        With no interaction history at all the page is simply newest-first
        by published date and no scores are attached. Any recorded
        interaction, even one that filters out of the profile, gets scored.
        """
        now = now or datetime.now(timezone.utc)
        limit = self.config.DEFAULT_RECOMMENDATION_LIMIT if limit is None else limit

        since = now - timedelta(days=self.config.CANDIDATE_WINDOW_DAYS)
        candidates = self.store.get_candidate_articles(since)
        history = self._load_history()
        profile = build_profile(history, now=now, config=self.config)

        if not history:
            logger.info(f"No interaction history, ordering {len(candidates)} candidates by publish date")
            ordered = sorted(candidates, key=sort_timestamp, reverse=True)
            ranked = [Recommendation(article, None) for article in ordered]
        else:
            interactions = defaultdict(list)
            for interaction in history:
                interactions[interaction.article_id].append(interaction)
            scored = [
                Recommendation(
                    article,
                    score_article(article, profile, interactions.get(article.id, []), now=now, config=self.config),
                )
                for article in candidates
            ]
            # Highest total first, newest first among equal totals
            scored.sort(key=lambda r: (r.breakdown.total_score, sort_timestamp(r.article)), reverse=True)
            ranked = scored

        page = ranked[offset:offset + limit]
        self.store.increment_view_counts(r.article.id for r in page)

        if page and page[0].breakdown is not None:
            top = page[0]
            logger.info(
                f"Top recommendation '{top.article.title[:60]}' "
                f"(total={top.breakdown.total_score:.3f}, keyword={top.breakdown.keyword_score:.3f}, "
                f"interaction={top.breakdown.interaction_score:.3f})"
            )
        logger.info(f"Serving {len(page)} of {len(ranked)} candidates (offset={offset})")
        return page

    def get_similar_articles(
        self,
        article_id: int,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> List[SimilarArticle]:
        """
        Articles from the same category and recent window that share the
        most keywords with the given one. Served articles count a view.

        Raises:
            ArticleNotFoundError: no article with that id
        """
        now = now or datetime.now(timezone.utc)
        limit = self.config.DEFAULT_SIMILAR_LIMIT if limit is None else limit

        seed = self.store.get_article_by_id(article_id)
        if seed is None:
            raise ArticleNotFoundError(f"Article {article_id} not found")

        since = now - timedelta(days=self.config.SIMILAR_WINDOW_DAYS)
        candidates = self.store.get_similar_candidates(seed, since)
        interactions = self.store.list_interactions_for(c.id for c in candidates)

        similar = rank_similar(seed, candidates, interactions, limit, config=self.config)
        self.store.increment_view_counts(s.article.id for s in similar)

        logger.info(f"Found {len(similar)} articles similar to {article_id} among {len(candidates)} candidates")
        return similar

    def record_interaction(self, article_id: int, interaction_type: str):
        """
        Raises:
            ArticleNotFoundError: no article with that id
            InvalidInteractionError: unknown interaction type
        """
        if interaction_type not in INTERACTION_TYPES:
            raise InvalidInteractionError(f"Invalid interaction type: {interaction_type!r}")
        if self.store.get_article_by_id(article_id) is None:
            raise ArticleNotFoundError(f"Article {article_id} not found")
        return self.store.record_interaction(article_id, interaction_type)
