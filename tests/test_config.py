"""
Configuration Tests

Tests FormSentryConfig defaults, environment loading and the static
config provider.
"""

import pytest

from formsentry.config import (
    DEFAULT_BLOCK_THRESHOLD,
    DEFAULT_MAX_TRACKED_ORIGINS,
    DEFAULT_SPAM_KEYWORDS,
    FormSentryConfig,
    StaticConfigProvider,
    parse_bool,
)


ENV_VARS = (
    "FORMSENTRY_RATE_LIMIT_WINDOW",
    "FORMSENTRY_RATE_LIMIT_MAX",
    "FORMSENTRY_BLOCK_THRESHOLD",
    "FORMSENTRY_LATIN_ONLY",
    "FORMSENTRY_SKIP_PATHS",
    "FORMSENTRY_MAX_TRACKED_ORIGINS",
    "FORMSENTRY_SHOW_BADGE",
    "FORMSENTRY_BADGE_MESSAGE",
)


@pytest.fixture
def clean_env(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestDefaults:

    def test_defaults(self):
        config = FormSentryConfig()
        assert config.rate_limit_window == 60.0
        assert config.rate_limit_max == 5
        assert config.threshold == DEFAULT_BLOCK_THRESHOLD
        assert config.latin_only is False
        assert config.spam_keywords == DEFAULT_SPAM_KEYWORDS

    def test_non_positive_rate_settings_reset(self):
        config = FormSentryConfig(rate_limit_window=0, rate_limit_max=-1)
        assert config.rate_limit_window == 60.0
        assert config.rate_limit_max == 5

    def test_explicit_zero_threshold(self):
        assert FormSentryConfig(block_threshold=0).threshold == 0

    @pytest.mark.parametrize("value", [0, -1])
    def test_non_positive_origin_bound_resets(self, value):
        assert FormSentryConfig(max_tracked_origins=value).max_tracked_origins == DEFAULT_MAX_TRACKED_ORIGINS

    def test_nan_window_resets(self):
        assert FormSentryConfig(rate_limit_window=float("nan")).rate_limit_window == 60.0

    def test_blank_badge_message_resets(self):
        assert FormSentryConfig(badge_message="  ").badge_message == "Protected by FormSentry"


class TestFromEnv:

    def test_empty_environment(self, clean_env):
        assert FormSentryConfig.from_env() == FormSentryConfig()

    def test_reads_every_variable(self, clean_env):
        clean_env.setenv("FORMSENTRY_RATE_LIMIT_WINDOW", "30")
        clean_env.setenv("FORMSENTRY_RATE_LIMIT_MAX", "10")
        clean_env.setenv("FORMSENTRY_BLOCK_THRESHOLD", "-8")
        clean_env.setenv("FORMSENTRY_LATIN_ONLY", "Yes")
        clean_env.setenv("FORMSENTRY_SKIP_PATHS", "/webhooks, /api/ ,,")
        clean_env.setenv("FORMSENTRY_MAX_TRACKED_ORIGINS", "500")

        config = FormSentryConfig.from_env()
        assert config.rate_limit_window == 30.0
        assert config.rate_limit_max == 10
        assert config.threshold == -8
        assert config.latin_only is True
        assert config.skip_paths == ["/webhooks", "/api/"]
        assert config.max_tracked_origins == 500

    def test_reads_badge_settings(self, clean_env):
        clean_env.setenv("FORMSENTRY_SHOW_BADGE", "on")
        clean_env.setenv("FORMSENTRY_BADGE_MESSAGE", "Guarded")
        config = FormSentryConfig.from_env()
        assert config.show_badge is True
        assert config.badge_message == "Guarded"

    def test_invalid_threshold_ignored(self, clean_env):
        clean_env.setenv("FORMSENTRY_BLOCK_THRESHOLD", "strict")
        assert FormSentryConfig.from_env().threshold == DEFAULT_BLOCK_THRESHOLD

    @pytest.mark.parametrize("var,raw", [
        ("FORMSENTRY_RATE_LIMIT_MAX", "five"),
        ("FORMSENTRY_RATE_LIMIT_MAX", "2.5"),
        ("FORMSENTRY_RATE_LIMIT_WINDOW", "1m"),
        ("FORMSENTRY_MAX_TRACKED_ORIGINS", "lots"),
    ])
    def test_invalid_numbers_fall_back_to_defaults(self, clean_env, caplog, var, raw):
        clean_env.setenv(var, raw)
        assert FormSentryConfig.from_env() == FormSentryConfig()
        assert var in caplog.text

    def test_zero_origin_bound_from_env_resets(self, clean_env):
        clean_env.setenv("FORMSENTRY_MAX_TRACKED_ORIGINS", "0")
        assert FormSentryConfig.from_env().max_tracked_origins == DEFAULT_MAX_TRACKED_ORIGINS


class TestStaticProvider:

    def test_serves_latin_only(self):
        provider = StaticConfigProvider(FormSentryConfig(latin_only=True))
        assert provider.get_bool_config("latin_only", False) is True
        assert provider.get_bool_config("other", True) is True

    def test_empty_keywords_fall_back_to_seed(self):
        provider = StaticConfigProvider(FormSentryConfig(spam_keywords=[]))
        assert provider.get_spam_keywords() == DEFAULT_SPAM_KEYWORDS


@pytest.mark.parametrize("raw,expected", [
    ("1", True), ("TRUE", True), (" on ", True), ("yes", True),
    ("0", False), ("off", False), ("", False),
])
def test_parse_bool(raw, expected):
    assert parse_bool(raw) is expected


def test_parse_bool_default_for_none():
    assert parse_bool(None, True) is True
