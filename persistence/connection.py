"""
FormSentry Redis Connection

One pooled redis-py client per process, shared by the config store and
the shared rate store. Either REDIS_URL or the discrete REDIS_* variables
configure it; without either the caller falls back to in-memory state.
"""

import os
import logging
from functools import lru_cache

import redis
from redis.exceptions import RedisError, AuthenticationError

logger = logging.getLogger(__name__)

SOCKET_TIMEOUT = 2.0
MAX_CONNECTIONS = 50


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """
    Return the process-wide Redis client, connecting on first use.

    Environment:
    - REDIS_URL: Full connection URL (takes precedence)
    - REDIS_HOST / REDIS_PORT / REDIS_DB: Discrete settings (localhost:6379/0)
    - REDIS_PASSWORD: Required when REDIS_URL is not set

    Raises:
        ValueError: Neither REDIS_URL nor REDIS_PASSWORD is set.
        RedisError: The server is unreachable or rejects the credentials.
    """
    url = os.getenv("REDIS_URL")
    password = os.getenv("REDIS_PASSWORD")

    if url:
        pool = redis.ConnectionPool.from_url(
            url,
            decode_responses=True,
            max_connections=MAX_CONNECTIONS,
            socket_timeout=SOCKET_TIMEOUT,
        )
        target = url.rsplit("@", 1)[-1]
    elif password:
        host = os.getenv("REDIS_HOST", "localhost")
        port = int(os.getenv("REDIS_PORT", 6379))
        db = int(os.getenv("REDIS_DB", 0))
        pool = redis.ConnectionPool(
            host=host,
            port=port,
            db=db,
            password=password,
            decode_responses=True,
            max_connections=MAX_CONNECTIONS,
            socket_timeout=SOCKET_TIMEOUT,
        )
        target = f"{host}:{port}/{db}"
    else:
        raise ValueError("Set REDIS_URL or REDIS_PASSWORD to use Redis-backed stores.")

    client = redis.Redis(connection_pool=pool)
    try:
        client.ping()
    except AuthenticationError:
        logger.error(f"Redis authentication failed for {target}")
        pool.disconnect()
        raise
    except RedisError as e:
        logger.error(f"Could not connect to Redis at {target}: {e}")
        pool.disconnect()
        raise

    logger.info(f"Connected to Redis at {target}")
    return client


def close_redis_client() -> None:
    """Drop the cached client and release its pool (no-op if never connected)."""
    if get_redis_client.cache_info().currsize:
        get_redis_client().connection_pool.disconnect()
    get_redis_client.cache_clear()
