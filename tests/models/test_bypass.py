"""
Bypass Rule Tests

Tests for BypassEvaluator: custom predicate, path prefixes and the
identity-provider callback heuristics.
"""

import pytest

from formsentry.models.bypass import (
    BYPASS_CUSTOM,
    BYPASS_OAUTH_FLOW,
    BYPASS_OAUTH_REFERER,
    BYPASS_SKIP_PATH,
    BypassEvaluator,
)
from formsentry.schemas.inputs import RequestSnapshot


def snap(**fields) -> RequestSnapshot:
    fields.setdefault("origin", "198.51.100.1")
    return RequestSnapshot(**fields)


# =============================================================================
# Custom Predicate & Skip Paths
# =============================================================================

class TestConfiguredRules:

    def test_no_rules_no_bypass(self):
        assert BypassEvaluator().evaluate(snap(path="/contact")) == (False, "")

    def test_custom_predicate(self):
        evaluator = BypassEvaluator(skip_if=lambda s: s.origin == "10.0.0.1")
        assert evaluator.evaluate(snap(origin="10.0.0.1")) == (True, BYPASS_CUSTOM)
        assert evaluator.evaluate(snap(origin="10.0.0.2")) == (False, "")

    def test_raising_predicate_is_not_a_bypass(self):
        def explode(_):
            raise RuntimeError("boom")

        evaluator = BypassEvaluator(skip_if=explode)
        assert evaluator.evaluate(snap(path="/contact")) == (False, "")

    def test_raising_predicate_still_allows_path_rule(self):
        def explode(_):
            raise KeyError("missing")

        evaluator = BypassEvaluator(skip_paths=["/api/"], skip_if=explode)
        assert evaluator.evaluate(snap(path="/api/hook")) == (True, BYPASS_SKIP_PATH)

    @pytest.mark.parametrize("path,expected", [
        ("/webhooks/stripe", True),
        ("/webhooks", True),
        ("/web", False),
        ("/contact/webhooks", False),
    ])
    def test_skip_path_is_prefix_match(self, path, expected):
        evaluator = BypassEvaluator(skip_paths=["/webhooks"])
        assert evaluator.evaluate(snap(path=path))[0] is expected

    def test_empty_skip_path_ignored(self):
        evaluator = BypassEvaluator(skip_paths=[""])
        assert evaluator.evaluate(snap(path="/anything")) == (False, "")

    def test_custom_predicate_wins_over_path(self):
        evaluator = BypassEvaluator(skip_paths=["/"], skip_if=lambda s: True)
        assert evaluator.evaluate(snap(path="/x")) == (True, BYPASS_CUSTOM)


# =============================================================================
# Identity Provider Callbacks
# =============================================================================

class TestOAuthHeuristics:

    @pytest.fixture
    def evaluator(self):
        return BypassEvaluator()

    def test_code_and_state_on_any_path(self, evaluator):
        s = snap(method="GET", path="/landing", query={"code": ["abc"], "state": ["xyz"]})
        assert evaluator.evaluate(s) == (True, BYPASS_OAUTH_FLOW)

    def test_blank_code_does_not_count(self, evaluator):
        s = snap(method="GET", path="/landing", query={"code": ["  "], "state": ["xyz"]})
        assert evaluator.evaluate(s) == (False, "")

    @pytest.mark.parametrize("path", [
        "/oauth/github",
        "/oauth2/authorize",
        "/auth/google",
        "/login/callback",
        "/Users/OAuth/Return",
    ])
    def test_callback_path_with_code_or_state(self, evaluator, path):
        s = snap(method="GET", path=path, query={"state": ["xyz"]})
        assert evaluator.evaluate(s) == (True, BYPASS_OAUTH_FLOW)

    def test_callback_path_without_params(self, evaluator):
        assert evaluator.evaluate(snap(method="GET", path="/oauth/github")) == (False, "")

    @pytest.mark.parametrize("referer", [
        "https://accounts.google.com/o/oauth2/auth",
        "https://github.com/login/oauth/authorize",
        "https://github.com/session",
    ])
    def test_identity_provider_referer(self, evaluator, referer):
        s = snap(method="GET", path="/", referer=referer)
        assert evaluator.evaluate(s) == (True, BYPASS_OAUTH_REFERER)

    def test_post_never_matches_callback_rules(self, evaluator):
        s = snap(
            method="POST",
            path="/oauth/callback",
            query={"code": ["abc"], "state": ["xyz"]},
            referer="https://accounts.google.com/",
        )
        assert evaluator.evaluate(s) == (False, "")

    def test_lowercase_get_method(self, evaluator):
        s = snap(method="get", path="/", query={"code": ["a"], "state": ["b"]})
        assert evaluator.evaluate(s) == (True, BYPASS_OAUTH_FLOW)
