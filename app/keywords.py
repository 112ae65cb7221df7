import json
import logging
from typing import Iterable, List

logger = logging.getLogger(__name__)


class MalformedKeywordsError(ValueError):
    """Stored keyword data that is neither a list of strings nor JSON text encoding one."""


def normalize_keywords(keywords: Iterable[str], max_keywords: int = None) -> List[str]:
    """
    Lowercase, trim and de-duplicate keywords while keeping their first-seen order.
    Empty strings are dropped. Optionally caps the result at max_keywords.
    """
    seen = set()
    result = []
    for keyword in keywords:
        name = keyword.strip().lower()
        if not name or name in seen:
            continue
        seen.add(name)
        result.append(name)
        if max_keywords is not None and len(result) >= max_keywords:
            break
    return result


def parse_keywords(raw) -> List[str]:
    """
    Turn whatever the storage layer holds for an article's keywords into a
    normalized list.

    Accepts a list/tuple/set of strings, JSON text encoding such a list
    (rows written before the column was typed), or None (no keywords yet).

    Raises:
        MalformedKeywordsError: for undecodable JSON, non-list payloads,
            or non-string entries
    """
    if raw is None:
        return []

    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise MalformedKeywordsError(f"keywords are not valid JSON: {e}") from e
        if raw is None:
            return []

    if not isinstance(raw, (list, tuple, set)):
        raise MalformedKeywordsError(f"keywords must be a list, got {type(raw).__name__}")

    if not all(isinstance(k, str) for k in raw):
        raise MalformedKeywordsError("keywords must all be strings")

    return normalize_keywords(raw)


def safe_parse_keywords(raw, record: str) -> List[str]:
    """parse_keywords that logs and returns [] instead of raising. record names the row for the log."""
    try:
        return parse_keywords(raw)
    except MalformedKeywordsError as e:
        logger.warning(f"Ignoring malformed keywords on {record}: {e}")
        return []
