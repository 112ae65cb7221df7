import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from app.config import Settings, settings as default_settings
from app.decay import age_in_days, decay
from app.keywords import MalformedKeywordsError, parse_keywords

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionContext:
    """One interaction joined with the article context it was recorded against."""
    article_id: int
    interaction_type: str
    created_at: Optional[datetime]
    keywords: object = None  # raw storage value, parsed on use
    feed_title: Optional[str] = None
    feed_category: Optional[str] = None


@dataclass
class UserProfile:
    """
    Time-weighted preference maps derived from the whole interaction history.
    Rebuilt on every request, never persisted.
    """
    keywords: Dict[str, float] = field(default_factory=dict)
    sources: Dict[str, float] = field(default_factory=dict)
    categories: Dict[str, float] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.keywords or self.sources or self.categories)

    def as_lists(self) -> Dict[str, List[Dict[str, object]]]:
        """Descending-weight {name, weight} lists, the shape served by the profile endpoint."""
        return {
            "keywords": _ranked(self.keywords),
            "sources": _ranked(self.sources),
            "categories": _ranked(self.categories),
        }


def _ranked(weights: Dict[str, float]) -> List[Dict[str, object]]:
    ordered = sorted(weights.items(), key=lambda item: (-item[1], item[0]))
    return [{"name": name, "weight": weight} for name, weight in ordered]


def interaction_weight(interaction_type: str, config: Settings = default_settings) -> float:
    """Base weight for an interaction type. Unknown types weigh nothing."""
    return config.interaction_weights.get(interaction_type, 0.0)


def decayed_interaction_weight(
    interaction: InteractionContext,
    now: datetime,
    config: Settings = default_settings,
) -> float:
    """Base weight scaled by how long ago the interaction happened."""
    age = age_in_days(interaction.created_at, now)
    return interaction_weight(interaction.interaction_type, config) * decay(age, config.INTERACTION_DECAY_DAYS)


def build_profile(
    interactions: Iterable[InteractionContext],
    now: Optional[datetime] = None,
    config: Settings = default_settings,
) -> UserProfile:
    """
    Aggregate the interaction history into keyword, source and category weights.

    Every interaction contributes base_weight * decay(age, INTERACTION_DECAY_DAYS)
    to its article's feed title, feed category and each of its keywords.
    Keywords whose net weight ends up at or below zero are dropped, then all
    three maps lose entries below KEYWORD_PROFILE_MIN_WEIGHT.

    An interaction with malformed keyword data still counts towards source
    and category; only its keyword contribution is skipped.
    """
    now = now or datetime.now(timezone.utc)

    keywords: Dict[str, float] = defaultdict(float)
    sources: Dict[str, float] = defaultdict(float)
    categories: Dict[str, float] = defaultdict(float)
    counted = 0

    for interaction in interactions:
        if interaction.created_at is None:
            logger.warning(f"Skipping interaction on article {interaction.article_id} with no timestamp")
            continue

        weight = decayed_interaction_weight(interaction, now, config)
        counted += 1

        if interaction.feed_title:
            sources[interaction.feed_title] += weight
        if interaction.feed_category:
            categories[interaction.feed_category] += weight

        try:
            article_keywords = parse_keywords(interaction.keywords)
        except MalformedKeywordsError as e:
            logger.warning(f"Skipping keywords of article {interaction.article_id} while building profile: {e}")
            continue

        for keyword in article_keywords:
            keywords[keyword] += weight

    threshold = config.KEYWORD_PROFILE_MIN_WEIGHT
    profile = UserProfile(
        keywords={k: w for k, w in keywords.items() if w > 0 and w >= threshold},
        sources={s: w for s, w in sources.items() if w >= threshold},
        categories={c: w for c, w in categories.items() if w >= threshold},
    )

    logger.info(
        f"Built profile from {counted} interactions: "
        f"{len(profile.keywords)} keywords, {len(profile.sources)} sources, "
        f"{len(profile.categories)} categories"
    )
    return profile
