"""
FormSentry Audit Statistics

Read-side aggregates over the Supabase `captcha_logs` table written by
AuditLogger: busiest origins, User-Agents, hours of day and reason tags.

Every query can be narrowed to spam only, meaning rows whose score is at
or below the block threshold. Rows are fetched newest first in pages and
aggregated in process, capped at MAX_ROWS per query.

Hours are taken from `created_at` as stored (UTC).
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from supabase import create_client, Client

from formsentry.config import DEFAULT_BLOCK_THRESHOLD
from formsentry.schemas.outputs import HourStat, OriginStat, ReasonStat, UserAgentStat


logger = logging.getLogger(__name__)


DEFAULT_TOP_LIMIT = 10
DEFAULT_HOURS_LIMIT = 5
HOURS_PER_DAY = 24

HOUR_RE = re.compile(r"[T ](\d{2}):", re.ASCII)


class StatsUnavailableError(RuntimeError):
    """Raised when no audit storage is configured."""

    def __init__(self) -> None:
        super().__init__("storage not enabled")


class AuditStats:
    """
    Aggregate queries over recorded verdicts.

    Unlike the audit writer, query failures propagate to the caller.
    """

    TABLE = "captcha_logs"
    PAGE_SIZE = 1000
    MAX_ROWS = 50_000

    def __init__(
        self,
        client: Optional[Client] = None,
        threshold: int = DEFAULT_BLOCK_THRESHOLD,
        page_size: int = PAGE_SIZE,
        max_rows: int = MAX_ROWS,
    ) -> None:
        self.threshold = threshold
        self.page_size = max(1, page_size)
        self.max_rows = max(1, max_rows)
        self._client: Optional[Client] = client

        if self._client is None:
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_KEY")
            if url and key:
                self._client = create_client(url, key)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def top_origins(self, limit: int = DEFAULT_TOP_LIMIT, spam_only: bool = False) -> List[OriginStat]:
        """Most frequent client origins, empty origins excluded."""
        counts = Counter(
            row["origin"] for row in self._fetch("origin", spam_only) if row.get("origin")
        )
        return [
            OriginStat(origin=origin, count=count)
            for origin, count in _rank(counts, limit, DEFAULT_TOP_LIMIT)
        ]

    def top_user_agents(self, limit: int = DEFAULT_TOP_LIMIT, spam_only: bool = False) -> List[UserAgentStat]:
        """Most frequent User-Agent strings, empty values excluded."""
        counts = Counter(
            row["user_agent"] for row in self._fetch("user_agent", spam_only) if row.get("user_agent")
        )
        return [
            UserAgentStat(user_agent=ua, count=count)
            for ua, count in _rank(counts, limit, DEFAULT_TOP_LIMIT)
        ]

    def hourly_counts(self, spam_only: bool = False) -> List[int]:
        """Submission counts for hours 0..23."""
        hours = [
            hour for hour in (
                _hour_of(row.get("created_at")) for row in self._fetch("created_at", spam_only)
            )
            if hour is not None
        ]
        if not hours:
            return [0] * HOURS_PER_DAY
        return np.bincount(np.array(hours, dtype=np.int64), minlength=HOURS_PER_DAY).tolist()

    def top_hours(self, limit: int = DEFAULT_HOURS_LIMIT, spam_only: bool = False) -> List[HourStat]:
        """Busiest hours of day; hours with no traffic are omitted."""
        counts = {hour: count for hour, count in enumerate(self.hourly_counts(spam_only)) if count}
        return [
            HourStat(hour=hour, count=count)
            for hour, count in _rank(counts, limit, DEFAULT_HOURS_LIMIT)
        ]

    def top_reasons(self, limit: int = DEFAULT_TOP_LIMIT, spam_only: bool = False) -> List[ReasonStat]:
        """Most frequent reason tags. Rows with unreadable reasons are skipped."""
        counts: Counter = Counter()
        for row in self._fetch("reasons", spam_only):
            for reason in _reasons_of(row.get("reasons")):
                counts[reason] += 1
        return [
            ReasonStat(reason=reason, count=count)
            for reason, count in _rank(counts, limit, DEFAULT_TOP_LIMIT)
        ]

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def _fetch(self, columns: str, spam_only: bool) -> List[Dict[str, Any]]:
        """Page through matching rows, newest first, up to max_rows."""
        if self._client is None:
            raise StatsUnavailableError()

        rows: List[Dict[str, Any]] = []
        start = 0
        while start < self.max_rows:
            end = min(start + self.page_size, self.max_rows) - 1
            query = self._client.table(self.TABLE).select(columns)
            if spam_only:
                query = query.lte("score", self.threshold)
            response = query.order("created_at", desc=True).range(start, end).execute()

            page = response.data or []
            rows.extend(page)
            if len(page) <= end - start:
                break
            start = end + 1

        if len(rows) >= self.max_rows:
            logger.info(f"Stats query on {columns} capped at {self.max_rows} rows")
        return rows


# =============================================================================
# Helpers
# =============================================================================

def _rank(counts: Dict[Any, int], limit: int, default: int) -> List[Tuple[Any, int]]:
    """Highest count first, ties broken by key, truncated to limit (default when <= 0)."""
    if limit <= 0:
        limit = default
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]


def _hour_of(created_at: Any) -> Optional[int]:
    if not isinstance(created_at, str):
        return None
    match = HOUR_RE.search(created_at)
    if match is None:
        return None
    hour = int(match.group(1))
    return hour if hour < HOURS_PER_DAY else None


def _reasons_of(raw: Any) -> Iterable[str]:
    """Reason tags from a JSON array column (list or encoded string)."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            return []
    if not isinstance(raw, list):
        return []
    return [r.strip() for r in raw if isinstance(r, str) and r.strip()]
