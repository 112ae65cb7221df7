import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from the working directory once, before any Settings is built
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric {name}={raw!r}, using default {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using default {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Time constants that must stay strictly positive
_POSITIVE_DEFAULTS = {
    "RECENCY_HALF_LIFE_DAYS": 7.0,
    "INTERACTION_DECAY_DAYS": 30.0,
}


class Settings:
    """
    All tunable knobs of the recommendation engine and the service around it.

    Values come from the environment (or .env) when the instance is built;
    keyword arguments override both, which is how tests pin a configuration.
    """

    def __init__(self, **overrides):
        # --- Scoring blend ---
        self.KEYWORD_MATCH_WEIGHT = _env_float("KEYWORD_MATCH_WEIGHT", 0.4)
        self.CATEGORY_WEIGHT = _env_float("CATEGORY_WEIGHT", 0.2)
        self.SOURCE_WEIGHT = _env_float("SOURCE_WEIGHT", 0.2)
        self.RECENCY_WEIGHT = _env_float("RECENCY_WEIGHT", 0.2)
        self.RECENCY_HALF_LIFE_DAYS = _env_float("RECENCY_HALF_LIFE_DAYS", _POSITIVE_DEFAULTS["RECENCY_HALF_LIFE_DAYS"])

        # --- Interaction profile ---
        self.INTERACTION_DECAY_DAYS = _env_float("INTERACTION_DECAY_DAYS", _POSITIVE_DEFAULTS["INTERACTION_DECAY_DAYS"])
        self.KEYWORD_PROFILE_MIN_WEIGHT = _env_float("KEYWORD_PROFILE_MIN_WEIGHT", 0.2)
        self.THUMBS_UP_WEIGHT = _env_float("THUMBS_UP_WEIGHT", 5.0)
        self.THUMBS_DOWN_WEIGHT = _env_float("THUMBS_DOWN_WEIGHT", -3.0)
        self.CLICK_WEIGHT = _env_float("CLICK_WEIGHT", 1.0)

        # --- Exposure dynamics ---
        self.JUST_IN_BOOST_WEIGHT = _env_float("JUST_IN_BOOST_WEIGHT", 5.0)
        self.JUST_IN_MIN_KEYWORD_MATCHES = _env_int("JUST_IN_MIN_KEYWORD_MATCHES", 2)
        self.JUST_IN_MAX_VIEWS = _env_int("JUST_IN_MAX_VIEWS", 5)
        self.VIEW_FATIGUE_FACTOR = _env_float("VIEW_FATIGUE_FACTOR", 0.2)

        # --- Candidate windows and paging ---
        self.CANDIDATE_WINDOW_DAYS = _env_float("CANDIDATE_WINDOW_DAYS", 14.0)
        self.SIMILAR_WINDOW_DAYS = _env_float("SIMILAR_WINDOW_DAYS", 14.0)
        self.SIMILAR_INTERACTION_WEIGHT = _env_float("SIMILAR_INTERACTION_WEIGHT", 0.1)
        self.DEFAULT_RECOMMENDATION_LIMIT = _env_int("DEFAULT_RECOMMENDATION_LIMIT", 30)
        self.DEFAULT_SIMILAR_LIMIT = _env_int("DEFAULT_SIMILAR_LIMIT", 5)

        # --- Service ---
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./news.db")
        self.MAX_KEYWORDS_PER_ARTICLE = _env_int("MAX_KEYWORDS_PER_ARTICLE", 15)
        self.FETCH_INTERVAL_SECONDS = _env_int("FETCH_INTERVAL_SECONDS", 300)
        self.ENABLE_BACKGROUND_FETCH = _env_bool("ENABLE_BACKGROUND_FETCH", True)
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

        # Both feed decay(), which needs a positive time constant
        for name, default in _POSITIVE_DEFAULTS.items():
            value = getattr(self, name)
            if value <= 0:
                logger.warning(f"Ignoring non-positive {name}={value!r}, using default {default}")
                setattr(self, name, default)

    @property
    def interaction_weights(self) -> dict[str, float]:
        """Base weight of each interaction type before time decay."""
        return {
            "thumbs_up": self.THUMBS_UP_WEIGHT,
            "click": self.CLICK_WEIGHT,
            "thumbs_down": self.THUMBS_DOWN_WEIGHT,
        }


# Shared default: imported wherever no explicit Settings is passed
settings = Settings()
