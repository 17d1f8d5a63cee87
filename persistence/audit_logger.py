"""
FormSentry Audit Logger

Fire-and-forget audit log writer that inserts one structured entry into
the Supabase `captcha_logs` table for every verdict, bypassed requests
included.

Inserts run on a single background worker thread so the scoring path
never waits on the network. Call close() at shutdown to drain it.

Schema:
    captcha_logs (
        event_id   TEXT PRIMARY KEY,
        origin     TEXT,
        user_agent TEXT,
        score      INTEGER,
        reasons    JSONB,
        payload    JSONB,
        created_at TIMESTAMPTZ DEFAULT now()
    )
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import geoip2.database
from supabase import create_client, Client
from user_agents import parse as parse_user_agent

logger = logging.getLogger(__name__)


_PRIVATE_PREFIXES = (
    "10.", "172.16.", "172.17.", "172.18.", "172.19.",
    "172.20.", "172.21.", "172.22.", "172.23.",
    "172.24.", "172.25.", "172.26.", "172.27.",
    "172.28.", "172.29.", "172.30.", "172.31.",
    "192.168.", "127.", "0.", "::1", "fe80:",
)


class AuditLogger:
    """
    Builds and inserts audit entries into Supabase.

    All writes are best-effort and asynchronous: record() only queues
    the insert, and errors are logged on the worker thread. With no
    credentials configured every call is a no-op.
    """

    TABLE = "captcha_logs"
    ENGINE_VERSION = "v1.0.0"

    def __init__(
        self,
        client: Optional[Client] = None,
        geoip_path: str = "assets/GeoLite2-City.mmdb",
    ) -> None:
        self.geoip = None
        self._client: Optional[Client] = client
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

        if self._client is None:
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_KEY")
            if not url or not key:
                logger.warning("Supabase credentials missing, audit logging disabled")
                return
            self._client = create_client(url, key)

        # GeoIP reader (optional enrichment)
        try:
            self.geoip = geoip2.database.Reader(geoip_path)
        except Exception as e:
            logger.warning(f"GeoIP database unavailable for audit logger: {e}")
            self.geoip = None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> Optional[Client]:
        return self._client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def record(
        self,
        origin: str,
        user_agent: str,
        score: int,
        reasons: List[str],
    ) -> Optional[Future]:
        """
        Queue an audit log entry for insertion.

        Args:
            origin:     Client network identity.
            user_agent: Raw User-Agent header.
            score:      Final score of the evaluation.
            reasons:    Ordered reason tags.

        Returns:
            The pending insert, or None when logging is disabled.
        """
        if self._client is None:
            return None

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="audit")
            return self._executor.submit(self._insert, origin, user_agent, score, list(reasons))

    def close(self) -> None:
        """Wait for queued inserts and stop the worker."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
        if self.geoip is not None:
            self.geoip.close()
            self.geoip = None

    def _insert(self, origin: str, user_agent: str, score: int, reasons: List[str]) -> None:
        try:
            entry = self._build_entry(origin, user_agent, score, reasons)
            self._client.table(self.TABLE).insert({
                "event_id": entry["event_id"],
                "origin": origin,
                "user_agent": user_agent,
                "score": score,
                "reasons": list(reasons),
                "payload": entry,
            }).execute()
            logger.debug(f"Audit log inserted: {entry['event_id']}")
        except Exception as e:
            logger.error(f"Audit log insertion failed: {e}")

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _resolve_ip(self, ip_address: str) -> Dict[str, Any]:
        """
        Resolve IP address to geo data using GeoLite2.
        Returns { country, city }, best-effort.
        """
        if ip_address.startswith(_PRIVATE_PREFIXES):
            return {"country": "private", "city": "private"}

        if self.geoip is None:
            return {"country": "unknown", "city": "unknown"}

        try:
            response = self.geoip.city(ip_address)
            return {
                "country": response.country.iso_code or "unknown",
                "city": response.city.name or "unknown",
            }
        except Exception as e:
            logger.debug(f"GeoIP lookup failed for {ip_address}: {e}")
            return {"country": "unknown", "city": "unknown"}

    def _describe_user_agent(self, user_agent: str) -> Dict[str, Any]:
        ua = parse_user_agent(user_agent or "")
        return {
            "browser": ua.browser.family,
            "os": ua.os.family,
            "is_bot": ua.is_bot,
        }

    # ------------------------------------------------------------------
    # Payload Builder
    # ------------------------------------------------------------------

    def _build_entry(
        self,
        origin: str,
        user_agent: str,
        score: int,
        reasons: List[str],
    ) -> Dict[str, Any]:
        """Assemble the full audit log payload."""
        now = datetime.now(timezone.utc)

        return {
            "event_id": f"evt_{uuid.uuid4()}",
            "timestamp": now.isoformat(),
            "environment": os.getenv("FORMSENTRY_ENV", "production"),

            "network_context": {
                "origin": origin,
                "geo_location": self._resolve_ip(origin),
                "user_agent": user_agent,
                "client": self._describe_user_agent(user_agent),
            },

            "analysis": {
                "engine_version": self.ENGINE_VERSION,
                "score": score,
                "reasons": list(reasons),
                "bypassed": any(r.startswith("bypass:") for r in reasons),
            },
        }
