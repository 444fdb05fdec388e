"""Revoked session token ids.

Logout adds the token's ``jti`` here and verification consults it. The
in-memory store only works for a single process; deployments with several
workers should set ``REVOCATION_BACKEND=redis``.
"""
import time
from typing import Dict, Optional

from messenger.config import settings


class RevocationStore:
    async def is_revoked(self, jti: str) -> bool:
        raise NotImplementedError

    async def revoke(self, jti: str, ttl_seconds: int) -> None:
        raise NotImplementedError


class InMemoryRevocationStore(RevocationStore):
    def __init__(self):
        self._expires: Dict[str, float] = {}

    async def is_revoked(self, jti: str) -> bool:
        expires = self._expires.get(jti)
        if expires is None:
            return False
        if expires <= time.monotonic():
            # token would be expired by now anyway
            del self._expires[jti]
            return False
        return True

    async def revoke(self, jti: str, ttl_seconds: int) -> None:
        self._expires[jti] = time.monotonic() + max(ttl_seconds, 1)


class RedisRevocationStore(RevocationStore):
    KEY_PREFIX = "revoked:"

    def __init__(self, redis_client):
        self.redis = redis_client

    async def is_revoked(self, jti: str) -> bool:
        return bool(await self.redis.exists(f"{self.KEY_PREFIX}{jti}"))

    async def revoke(self, jti: str, ttl_seconds: int) -> None:
        await self.redis.set(f"{self.KEY_PREFIX}{jti}", "1", ex=max(ttl_seconds, 1))


_store: Optional[RevocationStore] = None


async def get_revocation_store() -> RevocationStore:
    global _store
    if _store is None:
        if settings.REVOCATION_BACKEND == "redis":
            from messenger.database import get_redis

            _store = RedisRevocationStore(await get_redis())
        else:
            _store = InMemoryRevocationStore()
    return _store
