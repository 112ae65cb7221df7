import math
from datetime import datetime, timezone

SECONDS_PER_DAY = 86400.0


def decay(age_in_days: float, half_life_days: float) -> float:
    """
    Exponential time decay: exp(-age / half_life).

    1.0 at age 0, strictly decreasing, never reaches zero. Note that this
    is exp(-1) ≈ 0.368 (not 0.5) when age equals half_life_days; the
    parameter is a decay constant that keeps its historical name.
    """
    return math.exp(-age_in_days / half_life_days)


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def age_in_days(then: datetime, now: datetime) -> float:
    """Days elapsed between then and now, clamped at 0 for future-dated records."""
    elapsed = (ensure_utc(now) - ensure_utc(then)).total_seconds() / SECONDS_PER_DAY
    return max(0.0, elapsed)


def sort_timestamp(article) -> float:
    """Publish time (stored_at when missing) as a sortable number; undated articles sort last."""
    when = article.published_at or getattr(article, "stored_at", None)
    if when is None:
        return float("-inf")
    return ensure_utc(when).timestamp()
