"""
FormSentry Test Suite - Shared Pytest Fixtures

This conftest.py provides fixtures for all test categories including:
- Behavior trace builders (human-like and synthetic)
- Request snapshot factory producing an otherwise-perfect submission
- Engine instances and a recording audit sink

Usage:
    pytest tests/ -v
"""

import base64
import json
from typing import Any, Dict, List, Optional, Sequence

import pytest

from formsentry.config import FormSentryConfig
from formsentry.orchestrator import ScoringEngine
from formsentry.schemas.inputs import RequestSnapshot


# =============================================================================
# Constants
# =============================================================================

# Fixed evaluation instant (seconds) so timestamps are deterministic
NOW = 1_700_000_010.0
NOW_MS = int(NOW * 1000)

BASE_T = 1_700_000_000_000

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

HUMAN_EVENTS: List[Dict[str, Any]] = [
    {"x": 10, "y": 10, "t": BASE_T},
    {"x": 40, "y": 30, "t": BASE_T + 120},
    {"x": 80, "y": 60, "t": BASE_T + 260},
    {"key": True, "t": BASE_T + 430},
    {"x": 120, "y": 90, "t": BASE_T + 610},
    {"click": True, "t": BASE_T + 800},
]


# =============================================================================
# Trace Helpers
# =============================================================================

def encode_trace(events: Sequence[Dict[str, Any]]) -> str:
    """Encode events the way the client script does."""
    return base64.b64encode(json.dumps(list(events)).encode("utf-8")).decode("ascii")


@pytest.fixture
def human_trace() -> str:
    """Encoded trace that passes every behavior check."""
    return encode_trace(HUMAN_EVENTS)


# =============================================================================
# Snapshot Factory
# =============================================================================

def perfect_form(trace: str) -> Dict[str, List[str]]:
    return {
        "name": ["Jane Doe"],
        "email": ["jane@example.org"],
        "message": ["Hi there, could you tell me about your opening hours on weekends?"],
        "ts": [str(NOW_MS - 5000)],
        "js_token": ["set_by_js"],
        "behavior_data": [trace],
    }


@pytest.fixture
def make_snapshot(human_trace):
    """
    Factory fixture returning a perfect submission with overrides.

    Usage:
        def test_example(make_snapshot):
            snap = make_snapshot(form={"email": "bad"}, drop=["ts"], cookie=None)
    """
    def _make(
        form: Optional[Dict[str, Any]] = None,
        drop: Sequence[str] = (),
        **fields: Any,
    ) -> RequestSnapshot:
        form_data = perfect_form(human_trace)
        for key, value in (form or {}).items():
            form_data[key] = [value] if isinstance(value, str) else list(value)
        for key in drop:
            form_data.pop(key, None)

        data: Dict[str, Any] = {
            "origin": "203.0.113.7",
            "user_agent": CHROME_UA,
            "referer": "https://example.com/contact",
            "host": "example.com",
            "method": "POST",
            "path": "/contact",
            "cookie": "enabled",
            "accept": "text/html,application/xhtml+xml",
            "accept_language": "en-US,en;q=0.9",
            "sec_fetch_site": "same-origin",
            "sec_fetch_mode": "navigate",
        }
        data.update(fields)
        return RequestSnapshot(form=form_data, **data)

    return _make


# =============================================================================
# Engine Fixtures
# =============================================================================

class RecordingAuditSink:
    """Collects every record() call for assertions."""

    def __init__(self) -> None:
        self.records: List[tuple] = []

    def record(self, origin: str, user_agent: str, score: int, reasons: List[str]) -> None:
        self.records.append((origin, user_agent, score, list(reasons)))


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def engine(audit_sink) -> ScoringEngine:
    """Engine with default configuration and a recording audit sink."""
    return ScoringEngine(FormSentryConfig(), audit=audit_sink)


@pytest.fixture
def make_engine(audit_sink):
    """Factory fixture for engines with custom configuration."""
    def _make(**config: Any) -> ScoringEngine:
        return ScoringEngine(FormSentryConfig(**config), audit=audit_sink)
    return _make
