"""
FormSentry Configuration

Construction-time settings for the scoring engine, plus the read path
into the configuration collaborator that may change the Latin-only flag
and the spam keyword set between requests.

Environment variables (see FormSentryConfig.from_env):
- FORMSENTRY_RATE_LIMIT_WINDOW: Window in seconds (default: 60)
- FORMSENTRY_RATE_LIMIT_MAX: Requests allowed per window (default: 5)
- FORMSENTRY_BLOCK_THRESHOLD: Block when score <= threshold (default: -5)
- FORMSENTRY_LATIN_ONLY: Reject non-Latin letters (default: off)
- FORMSENTRY_SKIP_PATHS: Comma-separated bypass path prefixes
- FORMSENTRY_MAX_TRACKED_ORIGINS: Rate limiter LRU bound (default: 100000)
- FORMSENTRY_SHOW_BADGE: Render the protection badge (default: off)
- FORMSENTRY_BADGE_MESSAGE: Badge text (default: "Protected by FormSentry")

Invalid numeric values are logged and replaced by their defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Protocol

from formsentry.schemas.inputs import RequestSnapshot


logger = logging.getLogger(__name__)


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_RATE_LIMIT_WINDOW = 60.0
DEFAULT_RATE_LIMIT_MAX = 5
DEFAULT_BLOCK_THRESHOLD = -5
DEFAULT_MAX_TRACKED_ORIGINS = 100_000
DEFAULT_BADGE_MESSAGE = "Protected by FormSentry"

LATIN_ONLY_KEY = "latin_only"

DEFAULT_SPAM_KEYWORDS: List[str] = [
    "earn", "money", "cash", "crypto", "bitcoin", "forex", "seo", "backlink", "guest post",
    "sponsor", "telegram", "whatsapp", "casino", "bet", "loan", "payday", "work from home",
    "adult", "porn", "viagra", "sex", "xxx", "escort", "nft", "investment", "binary options",
    "cheap", "discount", "limited offer", "promo", "marketing", "followers", "likes",
]

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    """Interpret a boolean-like string ("1", "true", "yes", "on")."""
    if value is None:
        return default
    return value.strip().lower() in _TRUE_STRINGS


def env_number(name: str, default: Any, cast: Callable[[str], Any] = int) -> Any:
    """Read a numeric environment variable, falling back to the default when invalid."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}: {raw!r}")
        return default


# =============================================================================
# Engine Configuration
# =============================================================================

@dataclass
class FormSentryConfig:
    """Settings supplied once when the engine is built."""
    rate_limit_window: float = DEFAULT_RATE_LIMIT_WINDOW
    rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX

    # None means "use DEFAULT_BLOCK_THRESHOLD"; an explicit 0 is honoured.
    block_threshold: Optional[int] = None

    latin_only: bool = False
    spam_keywords: List[str] = field(default_factory=lambda: list(DEFAULT_SPAM_KEYWORDS))

    skip_paths: List[str] = field(default_factory=list)
    skip_if: Optional[Callable[[RequestSnapshot], bool]] = None

    max_tracked_origins: int = DEFAULT_MAX_TRACKED_ORIGINS

    show_badge: bool = False
    badge_message: str = DEFAULT_BADGE_MESSAGE

    def __post_init__(self) -> None:
        # Also catches NaN
        if not self.rate_limit_window > 0:
            self.rate_limit_window = DEFAULT_RATE_LIMIT_WINDOW
        if self.rate_limit_max <= 0:
            self.rate_limit_max = DEFAULT_RATE_LIMIT_MAX
        if self.max_tracked_origins <= 0:
            self.max_tracked_origins = DEFAULT_MAX_TRACKED_ORIGINS
        if not self.badge_message.strip():
            self.badge_message = DEFAULT_BADGE_MESSAGE

    @property
    def threshold(self) -> int:
        """Effective block threshold."""
        if self.block_threshold is None:
            return DEFAULT_BLOCK_THRESHOLD
        return self.block_threshold

    @classmethod
    def from_env(cls) -> FormSentryConfig:
        """Build configuration from FORMSENTRY_* environment variables."""
        skip_paths = [
            p.strip()
            for p in os.getenv("FORMSENTRY_SKIP_PATHS", "").split(",")
            if p.strip()
        ]

        return cls(
            rate_limit_window=env_number("FORMSENTRY_RATE_LIMIT_WINDOW", DEFAULT_RATE_LIMIT_WINDOW, float),
            rate_limit_max=env_number("FORMSENTRY_RATE_LIMIT_MAX", DEFAULT_RATE_LIMIT_MAX, int),
            block_threshold=env_number("FORMSENTRY_BLOCK_THRESHOLD", None, int),
            latin_only=parse_bool(os.getenv("FORMSENTRY_LATIN_ONLY"), False),
            skip_paths=skip_paths,
            max_tracked_origins=env_number(
                "FORMSENTRY_MAX_TRACKED_ORIGINS", DEFAULT_MAX_TRACKED_ORIGINS, int
            ),
            show_badge=parse_bool(os.getenv("FORMSENTRY_SHOW_BADGE"), False),
            badge_message=os.getenv("FORMSENTRY_BADGE_MESSAGE", DEFAULT_BADGE_MESSAGE),
        )


# =============================================================================
# Configuration Collaborator
# =============================================================================

class ConfigProvider(Protocol):
    """Read path into settings that may change between requests."""

    def get_bool_config(self, key: str, default: bool) -> bool:
        ...

    def get_spam_keywords(self) -> List[str]:
        ...


class StaticConfigProvider:
    """Serves the construction-time values of a FormSentryConfig."""

    def __init__(self, config: FormSentryConfig) -> None:
        self.config = config

    def get_bool_config(self, key: str, default: bool) -> bool:
        if key == LATIN_ONLY_KEY:
            return self.config.latin_only
        return default

    def get_spam_keywords(self) -> List[str]:
        return list(self.config.spam_keywords) or list(DEFAULT_SPAM_KEYWORDS)
