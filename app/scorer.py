import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from app.config import Settings, settings as default_settings
from app.decay import age_in_days, decay
from app.keywords import safe_parse_keywords
from app.profile import InteractionContext, UserProfile, decayed_interaction_weight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Every component that went into an article's total, kept for observability."""
    keyword_score: float
    source_score: float
    category_score: float
    recency_score: float
    interaction_score: float
    just_in_boost: float
    view_fatigue: float
    keyword_match_count: int
    total_score: float

    def as_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Individual components
# ---------------------------------------------------------------------------

def _keyword_score(keywords: list[str], profile: UserProfile, config: Settings) -> tuple[float, int]:
    """
    Profile weight summed over the article's keywords, divided by
    sqrt(keyword count) so long tag lists can't farm the score.

    Returns:
        weighted keyword score, number of keywords the profile knows
    """
    if not keywords:
        return 0.0, 0

    raw = 0.0
    matches = 0
    for keyword in keywords:
        weight = profile.keywords.get(keyword, 0.0)
        if weight != 0:
            raw += weight
            matches += 1

    return raw / math.sqrt(len(keywords)) * config.KEYWORD_MATCH_WEIGHT, matches


def _recency_score(article, now: datetime, config: Settings) -> float:
    # Fall back to stored_at when the feed gave no date; with neither, no recency signal
    published = article.published_at or getattr(article, "stored_at", None)
    if published is None:
        logger.warning(f"Article {article.id} has no usable date, recency score is 0")
        return 0.0
    days = age_in_days(published, now)
    return decay(days, config.RECENCY_HALF_LIFE_DAYS) * config.RECENCY_WEIGHT


def direct_interaction_score(
    interactions: Iterable[InteractionContext],
    now: datetime,
    config: Settings = default_settings,
) -> float:
    """Decayed sum of one article's own interactions, same weighting as the profile."""
    return sum(
        decayed_interaction_weight(interaction, now, config)
        for interaction in interactions
        if interaction.created_at is not None
    )


def just_in_boost(view_count: int, keyword_match_count: int, config: Settings = default_settings) -> float:
    """
    Bonus for fresh, on-profile articles that have barely been shown.
    Fades linearly to 0 as views approach JUST_IN_MAX_VIEWS.
    """
    if view_count >= config.JUST_IN_MAX_VIEWS:
        return 0.0
    if keyword_match_count < config.JUST_IN_MIN_KEYWORD_MATCHES:
        return 0.0
    return config.JUST_IN_BOOST_WEIGHT * (1 - view_count / config.JUST_IN_MAX_VIEWS)


def view_fatigue(view_count: int, config: Settings = default_settings) -> float:
    """Superlinear penalty for repeated exposure: -(views ^ 1.5) * VIEW_FATIGUE_FACTOR."""
    if view_count <= 0:
        return 0.0
    return -(view_count ** 1.5) * config.VIEW_FATIGUE_FACTOR


# ---------------------------------------------------------------------------
# Total score
# ---------------------------------------------------------------------------

def score_article(
    article,
    profile: UserProfile,
    interactions: Iterable[InteractionContext] = (),
    now: Optional[datetime] = None,
    config: Settings = default_settings,
) -> ScoreBreakdown:
    """
    Score one article against the user profile.

    total = keyword + source + category + recency (all weighted)
            + direct interaction score + just-in boost + view fatigue

    Args:
        article: anything with id, keywords, feed_title, feed_category,
            published_at, stored_at and view_count (the ORM Article in practice)
        profile: the current UserProfile
        interactions: this article's own interaction history
        now: reference time, defaults to the current UTC time
        config: scoring knobs

    Returns:
        ScoreBreakdown with every component and the unclamped total
    """
    now = now or datetime.now(timezone.utc)

    keywords = safe_parse_keywords(article.keywords, f"article {article.id}")
    keyword_score, matches = _keyword_score(keywords, profile, config)

    source_score = profile.sources.get(article.feed_title, 0.0) * config.SOURCE_WEIGHT
    category_score = profile.categories.get(article.feed_category, 0.0) * config.CATEGORY_WEIGHT
    recency_score = _recency_score(article, now, config)
    interaction_score = direct_interaction_score(interactions, now, config)

    view_count = article.view_count or 0
    boost = just_in_boost(view_count, matches, config)
    fatigue = view_fatigue(view_count, config)

    total = (
        keyword_score
        + source_score
        + category_score
        + recency_score
        + interaction_score
        + boost
        + fatigue
    )

    return ScoreBreakdown(
        keyword_score=keyword_score,
        source_score=source_score,
        category_score=category_score,
        recency_score=recency_score,
        interaction_score=interaction_score,
        just_in_boost=boost,
        view_fatigue=fatigue,
        keyword_match_count=matches,
        total_score=total,
    )
