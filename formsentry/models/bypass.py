"""
FormSentry Bypass Rules

Pure decision logic for exempting a request from scoring entirely.
Evaluated before any signal check. First match wins:

    1. Custom predicate (integrator supplied, fault-guarded)
    2. Path prefixes
    3. Identity-provider callback heuristics (GET only)
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

from formsentry.schemas.inputs import RequestSnapshot


logger = logging.getLogger(__name__)


# =============================================================================
# Reason Tags
# =============================================================================

BYPASS_CUSTOM = "bypass:custom"
BYPASS_SKIP_PATH = "bypass:skip_path"
BYPASS_OAUTH_FLOW = "bypass:oauth_flow"
BYPASS_OAUTH_REFERER = "bypass:oauth_referer"


class BypassEvaluator:
    """
    Decides whether a request skips scoring.

    Callback Heuristics (GET requests only):
        - "code" and "state" query parameters both present
        - callback-looking path plus "code" or "state"
        - referer from a known identity provider login page
    """

    OAUTH_PATH_MARKERS: Tuple[str, ...] = ("/oauth", "/oauth2", "/auth/")
    OAUTH_PATH_SUFFIX: str = "/callback"
    IDENTITY_PROVIDER_REFERERS: Tuple[str, ...] = (
        "accounts.google.com",
        "github.com/login",
        "github.com/session",
    )

    def __init__(
        self,
        skip_paths: Optional[Sequence[str]] = None,
        skip_if: Optional[Callable[[RequestSnapshot], bool]] = None,
    ) -> None:
        self.skip_paths: List[str] = [p for p in (skip_paths or []) if p]
        self.skip_if = skip_if

    def evaluate(self, snapshot: RequestSnapshot) -> Tuple[bool, str]:
        """
        Check bypass rules in order.

        Returns:
            (True, reason tag) when the request bypasses scoring,
            (False, "") otherwise.
        """
        if self._custom_match(snapshot):
            return True, BYPASS_CUSTOM

        for prefix in self.skip_paths:
            if snapshot.path.startswith(prefix):
                return True, BYPASS_SKIP_PATH

        if snapshot.method.upper() == "GET":
            return self._oauth_match(snapshot)

        return False, ""

    def _custom_match(self, snapshot: RequestSnapshot) -> bool:
        """Run the integrator predicate; any fault degrades to no bypass."""
        if self.skip_if is None:
            return False
        try:
            return bool(self.skip_if(snapshot))
        except Exception as e:
            logger.warning(f"Bypass predicate raised, ignoring: {e!r}")
            return False

    def _oauth_match(self, snapshot: RequestSnapshot) -> Tuple[bool, str]:
        code = snapshot.query_value("code").strip()
        state = snapshot.query_value("state").strip()

        if code and state:
            return True, BYPASS_OAUTH_FLOW

        path = snapshot.path.lower()
        callback_path = (
            any(marker in path for marker in self.OAUTH_PATH_MARKERS)
            or path.endswith(self.OAUTH_PATH_SUFFIX)
        )
        if callback_path and (code or state):
            return True, BYPASS_OAUTH_FLOW

        referer = snapshot.referer.lower()
        if any(provider in referer for provider in self.IDENTITY_PROVIDER_REFERERS):
            return True, BYPASS_OAUTH_REFERER

        return False, ""
