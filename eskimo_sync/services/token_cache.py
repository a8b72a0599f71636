"""
Access token caches.

The auth provider reads and writes the bearer token through a TokenCache so
that single-process and horizontally scaled deployments share one contract.
"""

import time
import logging
from abc import ABC, abstractmethod
from typing import Optional

logger = logging.getLogger(__name__)


class TokenCache(ABC):
    """Bearer token storage with a time-to-live."""

    @abstractmethod
    def get(self) -> Optional[str]:
        """Return the cached token, or None when missing or expired."""

    @abstractmethod
    def set(self, token: str, ttl: int) -> None:
        """Store a token for ``ttl`` seconds."""

    @abstractmethod
    def clear(self) -> None:
        """Drop the cached token."""


class MemoryTokenCache(TokenCache):
    """In-process cache for single-worker deployments."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get(self) -> Optional[str]:
        if self._token is None or self._clock() >= self._expires_at:
            return None
        return self._token

    def set(self, token: str, ttl: int) -> None:
        self._token = token
        self._expires_at = self._clock() + ttl

    def clear(self) -> None:
        self._token = None
        self._expires_at = 0.0


class RedisTokenCache(TokenCache):
    """Redis-backed cache shared between workers."""

    KEY = 'eskimo:access_token'

    def __init__(self, redis_client, key: Optional[str] = None):
        self.redis = redis_client
        self.key = key or self.KEY

    def get(self) -> Optional[str]:
        value = self.redis.get(self.key)
        if value is None:
            return None
        return value.decode('utf-8') if isinstance(value, bytes) else value

    def set(self, token: str, ttl: int) -> None:
        self.redis.setex(self.key, int(ttl), token)
        logger.debug(f"Cached access token for {ttl}s")

    def clear(self) -> None:
        self.redis.delete(self.key)
