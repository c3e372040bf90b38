"""Per-entity extraction run lock backed by a Redis lease."""

from __future__ import annotations

import logging
import secrets
from types import TracebackType

from redis.asyncio import Redis

from app.config import settings
from app.core.exceptions import AlreadyRunningError
from app.core.redis import get_redis_client

logger = logging.getLogger(__name__)

# Delete/extend only when the stored token is ours.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_REFRESH_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
end
return 0
"""


class RunLease:
    """A held run lock. Use as an async context manager to release on exit."""

    def __init__(self, lock: RunLock, entity_id: str, token: str) -> None:
        self._lock = lock
        self.entity_id = entity_id
        self.token = token
        self.released = False

    async def refresh(self) -> bool:
        """Extend the lease TTL. Returns False if the lease was lost."""
        held = await self._lock.refresh(self.entity_id, self.token)
        if not held:
            logger.warning("Run lease lost before refresh", extra={"entity_id": self.entity_id})
        return held

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        await self._lock.release(self.entity_id, self.token)

    async def __aenter__(self) -> RunLease:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release()


class RunLock:
    """At most one active extraction run per entity id.

    ``SET NX EX`` with a random token takes the lease; release and refresh use
    compare-and-act scripts so an expired lease re-acquired by another worker
    is never touched by the old holder.
    """

    def __init__(self, redis: Redis | None = None, ttl_seconds: int | None = None) -> None:
        self._redis = redis or get_redis_client()
        self.ttl_seconds = int(ttl_seconds or settings.extraction_lock_ttl_seconds)

    @staticmethod
    def key(entity_id: str) -> str:
        return f"extraction:lock:{entity_id}"

    async def acquire(self, entity_id: str) -> RunLease:
        """Take the lease or raise ``AlreadyRunningError``."""
        token = secrets.token_hex(16)
        acquired = await self._redis.set(self.key(entity_id), token, nx=True, ex=self.ttl_seconds)
        if not acquired:
            logger.info("Extraction run lock busy", extra={"entity_id": entity_id})
            raise AlreadyRunningError(entity_id)
        logger.debug("Extraction run lock acquired", extra={"entity_id": entity_id})
        return RunLease(self, entity_id, token)

    async def refresh(self, entity_id: str, token: str) -> bool:
        result = await self._redis.eval(
            _REFRESH_SCRIPT, 1, self.key(entity_id), token, str(self.ttl_seconds)
        )
        return bool(result)

    async def release(self, entity_id: str, token: str) -> None:
        released = await self._redis.eval(_RELEASE_SCRIPT, 1, self.key(entity_id), token)
        if not released:
            logger.warning(
                "Extraction run lock already expired or taken over",
                extra={"entity_id": entity_id},
            )

    async def is_held(self, entity_id: str) -> bool:
        return bool(await self._redis.exists(self.key(entity_id)))


_run_lock: RunLock | None = None


def get_run_lock() -> RunLock:
    """Get singleton run lock on the shared Redis client."""
    global _run_lock
    if _run_lock is None:
        _run_lock = RunLock()
    return _run_lock
