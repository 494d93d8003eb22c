"""Redis cache for effective permission sets."""

import json
import logging
from typing import FrozenSet, Optional

import redis

from taskgate.core.config import settings

logger = logging.getLogger("taskgate.cache")

KEY_PREFIX = "taskgate:permissions:user:"


class PermissionCache:
    """Caches each user's effective permission set.

    Every role or assignment mutation invalidates the affected entries. Redis
    failures are non-fatal: reads miss, writes and invalidations are skipped.
    """

    def __init__(self, url: Optional[str] = None, ttl_seconds: Optional[int] = None):
        self._url = url or settings.REDIS_URL
        self._ttl = ttl_seconds or settings.PERMISSION_CACHE_TTL_SECONDS
        self._client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return settings.FEATURE_PERMISSION_CACHE

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self._url,
                decode_responses=True,
                socket_connect_timeout=1,
                socket_timeout=1,
            )
        return self._client

    def get(self, user_id: int) -> Optional[FrozenSet[str]]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(f"{KEY_PREFIX}{user_id}")
        except redis.RedisError as exc:
            logger.debug("permission cache read failed: %s", exc)
            return None
        if raw is None:
            return None
        try:
            keys = json.loads(raw)
        except ValueError:
            logger.warning("undecodable permission cache entry for user %s; ignoring", user_id)
            return None
        if not isinstance(keys, list):
            return None
        return frozenset(keys)

    def set(self, user_id: int, permissions: FrozenSet[str]) -> None:
        if not self.enabled:
            return
        try:
            self.client.setex(f"{KEY_PREFIX}{user_id}", self._ttl, json.dumps(sorted(permissions)))
        except redis.RedisError as exc:
            logger.debug("permission cache write failed: %s", exc)

    def invalidate_user(self, user_id: int) -> None:
        if not self.enabled:
            return
        try:
            self.client.delete(f"{KEY_PREFIX}{user_id}")
        except redis.RedisError as exc:
            logger.warning("permission cache invalidation failed for user %s: %s", user_id, exc)

    def invalidate_all(self) -> None:
        """Drop every cached set; used when a role's permissions change."""
        if not self.enabled:
            return
        try:
            keys = list(self.client.scan_iter(f"{KEY_PREFIX}*"))
            if keys:
                self.client.delete(*keys)
        except redis.RedisError as exc:
            logger.warning("permission cache flush failed: %s", exc)

    def health_check(self) -> bool:
        """Check if Redis is reachable."""
        try:
            return bool(self.client.ping())
        except redis.RedisError:
            return False


permission_cache = PermissionCache()
