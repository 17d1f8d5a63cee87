"""
Redis Connection Tests

Tests get_redis_client configuration handling with redis-py patched out.
"""

from unittest.mock import patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from persistence.connection import close_redis_client, get_redis_client


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("REDIS_URL", "REDIS_PASSWORD", "REDIS_HOST", "REDIS_PORT", "REDIS_DB"):
        monkeypatch.delenv(var, raising=False)
    get_redis_client.cache_clear()
    yield
    get_redis_client.cache_clear()


def test_unconfigured_raises_value_error():
    with pytest.raises(ValueError):
        get_redis_client()


def test_password_settings_build_pool(monkeypatch):
    monkeypatch.setenv("REDIS_PASSWORD", "secret")
    monkeypatch.setenv("REDIS_HOST", "cache.internal")
    monkeypatch.setenv("REDIS_DB", "3")

    with patch("persistence.connection.redis.ConnectionPool") as pool_cls, \
            patch("persistence.connection.redis.Redis") as redis_cls:
        client = get_redis_client()

    assert client is redis_cls.return_value
    kwargs = pool_cls.call_args.kwargs
    assert kwargs["host"] == "cache.internal"
    assert kwargs["db"] == 3
    assert kwargs["password"] == "secret"
    assert kwargs["decode_responses"] is True
    redis_cls.return_value.ping.assert_called_once()


def test_url_takes_precedence(monkeypatch):
    monkeypatch.setenv("REDIS_URL", "redis://:pw@cache.internal:6380/1")
    monkeypatch.setenv("REDIS_PASSWORD", "ignored")

    with patch("persistence.connection.redis.ConnectionPool") as pool_cls, \
            patch("persistence.connection.redis.Redis"):
        get_redis_client()

    pool_cls.from_url.assert_called_once()
    assert pool_cls.from_url.call_args.args[0] == "redis://:pw@cache.internal:6380/1"
    pool_cls.assert_not_called()


def test_client_is_cached_until_closed(monkeypatch):
    monkeypatch.setenv("REDIS_PASSWORD", "secret")

    with patch("persistence.connection.redis.ConnectionPool"), \
            patch("persistence.connection.redis.Redis") as redis_cls:
        first = get_redis_client()
        assert get_redis_client() is first
        assert redis_cls.call_count == 1

        close_redis_client()
        first.connection_pool.disconnect.assert_called_once()
        get_redis_client()
        assert redis_cls.call_count == 2


def test_unreachable_server_propagates(monkeypatch):
    monkeypatch.setenv("REDIS_PASSWORD", "secret")

    with patch("persistence.connection.redis.ConnectionPool") as pool_cls, \
            patch("persistence.connection.redis.Redis") as redis_cls:
        redis_cls.return_value.ping.side_effect = RedisConnectionError("refused")
        with pytest.raises(RedisConnectionError):
            get_redis_client()

    pool_cls.return_value.disconnect.assert_called_once()


def test_close_without_client_is_noop():
    close_redis_client()
