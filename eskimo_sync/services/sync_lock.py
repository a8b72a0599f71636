"""
Sync Lock

Redis lease that serializes catalog sync runs across processes.
"""

import uuid
import logging
from typing import Optional

import redis

from eskimo_sync.services.error_handler import ValidationError

logger = logging.getLogger(__name__)

LOCK_PREFIX = 'eskimo:sync:'


class SyncInProgressError(ValidationError):
    """Another sync run holds the lease."""
    code = "SYNC_IN_PROGRESS"
    default_message = "Sync already in progress"


class SyncLock:
    """
    ``SET key owner NX EX ttl`` lease, released only by its owner.

    Usage:
        with SyncLock(redis_client, 'catalog', ttl=900):
            ...
    """

    def __init__(self, redis_client: redis.Redis, name: str = 'catalog', ttl: int = 900):
        self.redis = redis_client
        self.name = name
        self.key = f"{LOCK_PREFIX}{name}"
        self.ttl = ttl
        self.owner: Optional[str] = None

    def acquire(self) -> bool:
        owner = uuid.uuid4().hex
        if self.redis.set(self.key, owner, nx=True, ex=self.ttl):
            self.owner = owner
            logger.debug(f"Acquired sync lock {self.key}")
            return True
        return False

    def release(self) -> None:
        if self.owner is None:
            return
        current = self.redis.get(self.key)
        if isinstance(current, bytes):
            current = current.decode('utf-8')
        if current == self.owner:
            self.redis.delete(self.key)
            logger.debug(f"Released sync lock {self.key}")
        else:
            logger.warning(f"Sync lock {self.key} expired before release")
        self.owner = None

    def __enter__(self) -> 'SyncLock':
        if not self.acquire():
            raise SyncInProgressError(f"Sync [{self.name}] already in progress")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
