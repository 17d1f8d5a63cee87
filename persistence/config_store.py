"""
FormSentry Config Store

Redis-backed configuration collaborator. Values are read fresh on every
evaluation so operators can change them without restarting the service.

Key Schemas:
    FORMSENTRY:CONFIG          → HASH  (key → boolean-like string)
    FORMSENTRY:SPAM_KEYWORDS   → SET   (lowercased keywords)

Every read falls back to built-in defaults on a Redis error (fail open).
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import redis
from redis.exceptions import RedisError

from formsentry.config import DEFAULT_SPAM_KEYWORDS, LATIN_ONLY_KEY, parse_bool
from .connection import get_redis_client


logger = logging.getLogger(__name__)


class RedisConfigStore:
    """
    Configuration provider backed by Redis.

    Implements the ConfigProvider read path (get_bool_config,
    get_spam_keywords) plus the management writes used by operators.
    """

    CONFIG_KEY: str = "FORMSENTRY:CONFIG"
    KEYWORDS_KEY: str = "FORMSENTRY:SPAM_KEYWORDS"

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        self.client = client or get_redis_client()

    # -------------------------------------------------------------------------
    # Read Path
    # -------------------------------------------------------------------------

    def get_bool_config(self, key: str, default: bool) -> bool:
        """Boolean-like config value ("1", "true", "yes", "on"), or default."""
        try:
            value = self.client.hget(self.CONFIG_KEY, key)
        except RedisError as e:
            logger.warning(f"Config read failed for {key}: {e}")
            return default
        if value is None:
            return default
        return parse_bool(value, default)

    def get_spam_keywords(self) -> List[str]:
        """Configured keywords, or the seed list when none are stored."""
        try:
            keywords = self.client.smembers(self.KEYWORDS_KEY)
        except RedisError as e:
            logger.warning(f"Keyword read failed: {e}")
            return list(DEFAULT_SPAM_KEYWORDS)
        if not keywords:
            return list(DEFAULT_SPAM_KEYWORDS)
        return sorted(
            k.decode("utf-8") if isinstance(k, bytes) else k
            for k in keywords
        )

    # -------------------------------------------------------------------------
    # Management
    # -------------------------------------------------------------------------

    def set_config(self, key: str, value: str) -> bool:
        try:
            self.client.hset(self.CONFIG_KEY, key, value)
            return True
        except RedisError as e:
            logger.error(f"Config write failed for {key}: {e}")
            return False

    def add_keywords(self, keywords: Iterable[str]) -> int:
        """Add keywords (stripped, lowercased). Returns how many were new."""
        cleaned = [kw.strip().lower() for kw in keywords if kw and kw.strip()]
        if not cleaned:
            return 0
        try:
            return int(self.client.sadd(self.KEYWORDS_KEY, *cleaned))
        except RedisError as e:
            logger.error(f"Keyword write failed: {e}")
            return 0

    def add_keyword(self, keyword: str) -> bool:
        return self.add_keywords([keyword]) == 1

    def remove_keyword(self, keyword: str) -> bool:
        try:
            return bool(self.client.srem(self.KEYWORDS_KEY, keyword.strip().lower()))
        except RedisError as e:
            logger.error(f"Keyword delete failed: {e}")
            return False

    def list_keywords(self) -> List[str]:
        """Stored keywords only (no fallback to the seed list)."""
        try:
            keywords = self.client.smembers(self.KEYWORDS_KEY)
        except RedisError as e:
            logger.warning(f"Keyword list failed: {e}")
            return []
        return sorted(
            k.decode("utf-8") if isinstance(k, bytes) else k
            for k in keywords
        )

    def seed_defaults(self, latin_only: bool = True) -> None:
        """
        Insert-if-absent bootstrap: the Latin-only flag and the default
        keyword seed. Existing values are left untouched.
        """
        try:
            pipe = self.client.pipeline()
            pipe.hsetnx(self.CONFIG_KEY, LATIN_ONLY_KEY, "1" if latin_only else "0")
            pipe.sadd(self.KEYWORDS_KEY, *DEFAULT_SPAM_KEYWORDS)
            pipe.execute()
            logger.info("Seeded default FormSentry config and keywords")
        except RedisError as e:
            logger.error(f"Seeding defaults failed: {e}")
