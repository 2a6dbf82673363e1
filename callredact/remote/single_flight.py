"""Per-path single-flight guards for remote replacement.

At most one replacement may be in flight for a remote path at a time;
interleaving two delete+rename sequences can leave the path empty. A
second caller is rejected with ReplaceInProgressError rather than queued,
and the pipeline records it as an ordinary retryable transfer failure.
"""

import asyncio
import secrets
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import structlog
from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url

from callredact.common.models import ReplacePhase
from callredact.exceptions import ReplaceInProgressError

logger = structlog.get_logger()

KEY_PREFIX_REPLACE = "callredact:replace"

# Delete the lock only if it still holds our token.
RELEASE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class SingleFlight(Protocol):
    """Guard granting exclusive access to one remote path at a time."""

    def hold(self, path: str) -> AbstractAsyncContextManager[None]:
        """Hold the path for the duration of the block.

        Raises:
            ReplaceInProgressError: The path is already held
        """
        ...


def _busy(path: str) -> ReplaceInProgressError:
    return ReplaceInProgressError(
        f"Replacement already in progress for {path}",
        target_path=path,
        phase=ReplacePhase.PENDING,
    )


class LocalSingleFlight:
    """In-process guard; serializes tasks sharing one event loop."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    def is_held(self, path: str) -> bool:
        return path in self._held

    @asynccontextmanager
    async def hold(self, path: str) -> AsyncIterator[None]:
        if path in self._held:
            raise _busy(path)
        self._held.add(path)
        try:
            yield
        finally:
            self._held.discard(path)


class RedisSingleFlight:
    """Cross-process guard backed by a Redis key per path.

    The key expires after ``ttl_seconds`` so a crashed worker cannot hold a
    path forever; release is compare-and-delete on a random token so an
    expired holder never frees someone else's lock.
    """

    def __init__(self, redis: Redis, ttl_seconds: int = 300) -> None:
        self._redis = redis
        self._ttl_ms = int(ttl_seconds * 1000)
        self._release_script = self._redis.register_script(RELEASE_SCRIPT)

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = 300) -> "RedisSingleFlight":
        """Guard with its own client for ``url``; close it with ``aclose()``."""
        client = redis_from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, ttl_seconds=ttl_seconds)

    async def aclose(self) -> None:
        await self._redis.aclose()

    @asynccontextmanager
    async def hold(self, path: str) -> AsyncIterator[None]:
        key = f"{KEY_PREFIX_REPLACE}:{path}"
        token = secrets.token_hex(16)

        acquired = await self._redis.set(key, token, px=self._ttl_ms, nx=True)
        if not acquired:
            raise _busy(path)

        try:
            yield
        finally:
            try:
                await asyncio.shield(self._release_script(keys=[key], args=[token]))
            except Exception as e:
                # Lock expires on its own after the TTL.
                logger.warning("single_flight_release_failed", path=path, error=str(e))
