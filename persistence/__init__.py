"""
FormSentry Persistence Layer

Public exports for the Redis connection and the external collaborators
(configuration store, shared rate store, audit log and its statistics).
"""

from .connection import close_redis_client, get_redis_client
from .config_store import RedisConfigStore
from .rate_store import RedisRateLimiter
from .audit_logger import AuditLogger
from .stats_store import AuditStats, StatsUnavailableError

__all__ = [
    "get_redis_client",
    "close_redis_client",
    "RedisConfigStore",
    "RedisRateLimiter",
    "AuditLogger",
    "AuditStats",
    "StatsUnavailableError",
]
