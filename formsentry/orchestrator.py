"""
FormSentry Scoring Engine

Combines every signal into a single verdict for one form submission.

Evaluation Order:
    Bypass → Rate limit → Honeypot → Latin-only → Timestamp → JS token
    → Behavior → User-Agent → Referer → Secondary headers → Cookie
    → Content → Threshold

The honeypot and Latin-only checks are hard stops. Everything else
subtracts a fixed penalty and appends a reason tag. The score starts at
zero and is only ever decreased; the request is blocked when the final
score is at or below the configured threshold.
"""

from __future__ import annotations

import logging
import random
import re
import string
import time
from typing import List, Optional, Protocol, Tuple

from formsentry.config import (
    LATIN_ONLY_KEY,
    ConfigProvider,
    FormSentryConfig,
    StaticConfigProvider,
)
from formsentry.badge import render_badge
from formsentry.models.bypass import BypassEvaluator
from formsentry.processors.behavior import BehaviorValidator
from formsentry.processors.content import ContentAnalyzer, form_is_latin_only
from formsentry.schemas.inputs import INT64_MAX, INT64_MIN, RequestSnapshot
from formsentry.schemas.outputs import EvaluationResult
from formsentry.state_manager import RateLimiter


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

TIMESTAMP_FIELD = "ts"
JS_TOKEN_FIELD = "js_token"
BEHAVIOR_FIELD = "behavior_data"

JS_TOKEN_VALUE = "set_by_js"
JS_COOKIE_NAME = "js_captcha"
JS_COOKIE_VALUE = "enabled"

# Minimum time between form render and submit (client ms)
MIN_SUBMIT_DELAY_MS = 1500

# Optional sign then ASCII digits only; the value must also fit int64
TIMESTAMP_RE = re.compile(r"[+-]?[0-9]+", re.ASCII)
TIMESTAMP_MAX_CHARS = 20

HONEYPOT_PREFIX = "extra_"
HONEYPOT_SUFFIX_LENGTH = 6
HONEYPOT_ALPHABET = string.ascii_lowercase + string.digits

BROWSER_MARKER = "mozilla"
CHROMIUM_MARKER = "chrome"
HEADLESS_MARKERS: Tuple[str, ...] = (
    "HeadlessChrome",
    "PhantomJS",
    "SlimerJS",
    "Electron",
    "Puppeteer",
    "Go-http-client",
    "curl",
    "python-requests",
)

# Penalties
RATE_LIMIT_PENALTY = 3
TIMESTAMP_PENALTY = 3
JS_TOKEN_PENALTY = 2
BEHAVIOR_PENALTY = 3
UA_SUSPICIOUS_PENALTY = 2
HEADLESS_UA_PENALTY = 4
REFERER_PENALTY = 1
HEADER_PENALTY = 1
MISSING_COOKIE_PENALTY = 3
BAD_COOKIE_PENALTY = 2


# =============================================================================
# Collaborators
# =============================================================================

class AuditSink(Protocol):
    """Receives every verdict. Must tolerate being a no-op."""

    def record(self, origin: str, user_agent: str, score: int, reasons: List[str]) -> None:
        ...


class RateCounter(Protocol):
    """Per-origin sliding window counter (in-memory or Redis)."""

    def admit(self, origin: str, now: float) -> int:
        ...


class NullAuditSink:
    """Audit sink used when storage is disabled."""

    def record(self, origin: str, user_agent: str, score: int, reasons: List[str]) -> None:
        return None


def _random_field_name() -> str:
    rng = random.SystemRandom()
    suffix = "".join(rng.choice(HONEYPOT_ALPHABET) for _ in range(HONEYPOT_SUFFIX_LENGTH))
    return HONEYPOT_PREFIX + suffix


def parse_timestamp(raw: str) -> Optional[int]:
    """Parse a millisecond timestamp; None when malformed or out of range."""
    if len(raw) > TIMESTAMP_MAX_CHARS or not TIMESTAMP_RE.fullmatch(raw):
        return None
    value = int(raw)
    if not INT64_MIN <= value <= INT64_MAX:
        return None
    return value


# =============================================================================
# Scoring Engine
# =============================================================================

class ScoringEngine:
    """
    Synchronous, in-memory scorer for form submissions.

    Safe to share between worker threads: the rate limiter is the only
    mutable state and guards itself. Never raises on malformed input.
    """

    def __init__(
        self,
        config: Optional[FormSentryConfig] = None,
        config_provider: Optional[ConfigProvider] = None,
        audit: Optional[AuditSink] = None,
        rate_limiter: Optional[RateCounter] = None,
    ) -> None:
        """Initialize engine components."""
        self.config = config or FormSentryConfig()
        self.config_provider = config_provider or StaticConfigProvider(self.config)
        self.audit = audit or NullAuditSink()
        self.rate_limiter: RateCounter = rate_limiter or RateLimiter(
            window=self.config.rate_limit_window,
            max_origins=self.config.max_tracked_origins,
        )

        self.bypass = BypassEvaluator(
            skip_paths=self.config.skip_paths,
            skip_if=self.config.skip_if,
        )
        self.behavior_validator = BehaviorValidator()
        self.content_analyzer = ContentAnalyzer()

        self._honeypot_field = _random_field_name()

        logger.info(
            f"ScoringEngine initialized (threshold={self.config.threshold}, "
            f"rate={self.config.rate_limit_max}/{self.config.rate_limit_window}s)"
        )

    @property
    def honeypot_field(self) -> str:
        """Name of the decoy form field to render as a hidden input."""
        return self._honeypot_field

    @property
    def threshold(self) -> int:
        return self.config.threshold

    def badge_html(self) -> str:
        """Floating badge markup, empty when the badge is disabled."""
        return render_badge(self.config)

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate(self, snapshot: RequestSnapshot, now: Optional[float] = None) -> EvaluationResult:
        """
        Score a request and produce the verdict.

        Args:
            snapshot: Captured request
            now: Evaluation time in seconds since the epoch (defaults to time.time())

        Returns:
            EvaluationResult with blocked flag, score and ordered reasons.
        """
        if now is None:
            now = time.time()

        # ===== Bypass =====
        bypassed, why = self.bypass.evaluate(snapshot)
        if bypassed:
            return self._finalize(snapshot, blocked=False, score=0, reasons=[why], bypassed=True)

        score = 0
        reasons: List[str] = []

        # ===== Rate limit =====
        hits = self.rate_limiter.admit(snapshot.origin, now)
        if hits > self.config.rate_limit_max:
            score -= RATE_LIMIT_PENALTY
            reasons.append("rate_limit_exceeded")

        # ===== Hard stops =====
        if snapshot.form_value(self._honeypot_field).strip():
            reasons.append("hidden_field_filled")
            return self._finalize(snapshot, blocked=True, score=score, reasons=reasons)

        if self.config_provider.get_bool_config(LATIN_ONLY_KEY, self.config.latin_only):
            if not form_is_latin_only(snapshot.form, skip_field=self._honeypot_field):
                reasons.append("non_latin_detected")
                return self._finalize(snapshot, blocked=True, score=score, reasons=reasons)

        # ===== Client script signals =====
        score += self._check_timestamp(snapshot, now, reasons)

        if snapshot.form_value(JS_TOKEN_FIELD) != JS_TOKEN_VALUE:
            score -= JS_TOKEN_PENALTY
            reasons.append("missing_js_token")

        ok, why = self.behavior_validator.validate(snapshot.form_value(BEHAVIOR_FIELD))
        if not ok:
            score -= BEHAVIOR_PENALTY
            reasons.append(f"behavior:{why}" if why else "behavior_invalid")

        # ===== Header signals =====
        score += self._check_user_agent(snapshot.user_agent, reasons)
        score += self._check_referer(snapshot, reasons)
        score += self._check_secondary_headers(snapshot, reasons)
        score += self._check_cookie(snapshot.cookie, reasons)

        # ===== Content =====
        delta, extra = self.content_analyzer.analyze(
            snapshot.form,
            keywords=self.config_provider.get_spam_keywords(),
        )
        if delta:
            score += delta
            reasons.extend(extra)

        blocked = score <= self.threshold
        return self._finalize(snapshot, blocked=blocked, score=score, reasons=reasons)

    # -------------------------------------------------------------------------
    # Signal Checks (each returns a non-positive delta)
    # -------------------------------------------------------------------------

    def _check_timestamp(self, snapshot: RequestSnapshot, now: float, reasons: List[str]) -> int:
        raw = snapshot.form_value(TIMESTAMP_FIELD)
        if not raw:
            reasons.append("missing_timestamp")
            return -TIMESTAMP_PENALTY

        rendered_ms = parse_timestamp(raw)

        if rendered_ms is None or int(now * 1000) - rendered_ms < MIN_SUBMIT_DELAY_MS:
            reasons.append("too_fast_submit")
            return -TIMESTAMP_PENALTY
        return 0

    def _check_user_agent(self, user_agent: str, reasons: List[str]) -> int:
        delta = 0
        if not user_agent or BROWSER_MARKER not in user_agent.lower():
            delta -= UA_SUSPICIOUS_PENALTY
            reasons.append("ua_suspicious")

        if not user_agent or any(marker in user_agent for marker in HEADLESS_MARKERS):
            delta -= HEADLESS_UA_PENALTY
            reasons.append("headless_or_scripted_ua")
        return delta

    def _check_referer(self, snapshot: RequestSnapshot, reasons: List[str]) -> int:
        if not snapshot.referer:
            reasons.append("missing_referer")
            return -REFERER_PENALTY
        # Substring match against the declared host
        if snapshot.host and snapshot.host not in snapshot.referer:
            reasons.append("cross_site_referer")
            return -REFERER_PENALTY
        return 0

    def _check_secondary_headers(self, snapshot: RequestSnapshot, reasons: List[str]) -> int:
        delta = 0
        if not snapshot.accept and not snapshot.accept_language:
            delta -= HEADER_PENALTY
            reasons.append("missing_accept_and_language")

        if (
            CHROMIUM_MARKER in snapshot.user_agent.lower()
            and not snapshot.sec_fetch_site
            and not snapshot.sec_fetch_mode
        ):
            delta -= HEADER_PENALTY
            reasons.append("missing_sec_fetch_headers")
        return delta

    def _check_cookie(self, cookie: Optional[str], reasons: List[str]) -> int:
        if cookie is None:
            reasons.append("missing_js_cookie")
            return -MISSING_COOKIE_PENALTY
        if cookie != JS_COOKIE_VALUE:
            reasons.append("bad_js_cookie")
            return -BAD_COOKIE_PENALTY
        return 0

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def _finalize(
        self,
        snapshot: RequestSnapshot,
        blocked: bool,
        score: int,
        reasons: List[str],
        bypassed: bool = False,
    ) -> EvaluationResult:
        """Hand the verdict to the audit sink and build the result."""
        try:
            self.audit.record(snapshot.origin, snapshot.user_agent, score, list(reasons))
        except Exception as e:
            logger.error(f"Audit record failed for {snapshot.origin}: {e}")

        if blocked:
            logger.info(f"Blocked submission from {snapshot.origin}: score={score} reasons={reasons}")
        else:
            logger.debug(f"Allowed submission from {snapshot.origin}: score={score} reasons={reasons}")

        return EvaluationResult(
            blocked=blocked,
            score=score,
            reasons=reasons,
            bypassed=bypassed,
        )
