import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List

from app.config import Settings, settings as default_settings
from app.decay import sort_timestamp
from app.keywords import safe_parse_keywords
from app.profile import InteractionContext, interaction_weight

logger = logging.getLogger(__name__)


def similarity(source_keywords: Iterable[str], target_keywords: Iterable[str]) -> float:
    """
    Keyword-overlap similarity: |A ∩ B| / sqrt(|A| * max(|B|, 1)).

    1.0 for identical non-empty sets, 0 when the source has no keywords.
    Keywords are compared case-insensitively.
    """
    source = {k.lower() for k in source_keywords}
    if not source:
        return 0.0
    target = {k.lower() for k in target_keywords}

    overlap = len(source & target)
    return overlap / math.sqrt(len(source) * max(len(target), 1))


def raw_interaction_score(interactions: Iterable[InteractionContext], config: Settings = default_settings) -> float:
    """Plain sum of base weights, no time decay."""
    return sum(interaction_weight(i.interaction_type, config) for i in interactions)


@dataclass(frozen=True)
class SimilarArticle:
    article: object
    similarity: float
    interaction_score: float
    score: float


def rank_similar(
    seed,
    candidates: Iterable,
    interactions_by_article: Dict[int, List[InteractionContext]],
    limit: int,
    config: Settings = default_settings,
) -> List[SimilarArticle]:
    """
    Rank candidates by similarity to the seed article, nudged by how much
    the user has interacted with each candidate.

    score = similarity + SIMILAR_INTERACTION_WEIGHT * raw interaction sum

    Candidates sharing no keyword with the seed are left out. The candidate
    pool (same category, recent window) is chosen by the caller.
    """
    seed_keywords = safe_parse_keywords(seed.keywords, f"article {seed.id}")
    if not seed_keywords:
        return []

    ranked = []
    for candidate in candidates:
        if candidate.id == seed.id:
            continue
        candidate_keywords = safe_parse_keywords(candidate.keywords, f"article {candidate.id}")
        sim = similarity(seed_keywords, candidate_keywords)
        if sim <= 0:
            continue
        inter = raw_interaction_score(interactions_by_article.get(candidate.id, []), config)
        ranked.append(SimilarArticle(
            article=candidate,
            similarity=sim,
            interaction_score=inter,
            score=sim + config.SIMILAR_INTERACTION_WEIGHT * inter,
        ))

    # Ties go to the more recently published article
    ranked.sort(key=lambda s: (s.score, sort_timestamp(s.article)), reverse=True)
    return ranked[:limit]
