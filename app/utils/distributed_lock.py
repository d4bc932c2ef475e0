from __future__ import annotations

import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from redis.exceptions import RedisError

from app.utils.exceptions import ConflictException

logger = logging.getLogger(__name__)


CHECKOUT_LOCK_PREFIX = "dlock:checkout:"

# Delete only if the key still holds our token (a lock that expired may already belong to someone else).
_RELEASE_IF_OWNER = """
if redis.call('get', KEYS[1]) == ARGV[1] then
  return redis.call('del', KEYS[1])
end
return 0
""".strip()


class RedisLock:
    """SET NX EX lock owned through a random token."""

    def __init__(
        self,
        redis_client: Any,
        key: str,
        *,
        ttl_seconds: int = 30,
        poll_interval_seconds: float = 0.05,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        self.redis = redis_client
        self.key = key
        self.ttl_seconds = int(ttl_seconds)
        self.poll_interval_seconds = poll_interval_seconds
        self.token = secrets.token_urlsafe(16)
        self.held = False

    async def acquire(self, *, wait_timeout_seconds: float = 0.0) -> bool:
        if wait_timeout_seconds < 0:
            raise ValueError("wait_timeout_seconds must be non-negative")
        deadline = time.monotonic() + wait_timeout_seconds
        while True:
            if await self.redis.set(self.key, self.token, nx=True, ex=self.ttl_seconds):
                self.held = True
                return True
            if time.monotonic() >= deadline:
                return False
            await asyncio.sleep(self.poll_interval_seconds)

    async def release(self) -> None:
        if not self.held:
            return
        self.held = False
        try:
            await self.redis.eval(_RELEASE_IF_OWNER, 1, self.key, self.token)
        except RedisError as exc:
            # Left to expire via its TTL.
            logger.warning("event=lock.release_failed key=%s error=%s", self.key, str(exc))


@asynccontextmanager
async def checkout_lock(
    redis_client: Optional[Any],
    session_token: str,
    *,
    ttl_seconds: int = 30,
    wait_timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 0.05,
) -> AsyncIterator[None]:
    """Serialize checkout submissions for one payment session.

    A second submission of the same session while the first is still talking to
    the gateway gets a ConflictException instead of a second charge. Without a
    Redis client this is a no-op; the write-once session binding still rejects
    the loser after the fact.
    """
    if redis_client is None:
        yield
        return

    lock = RedisLock(
        redis_client,
        CHECKOUT_LOCK_PREFIX + session_token,
        ttl_seconds=ttl_seconds,
        poll_interval_seconds=poll_interval_seconds,
    )
    if not await lock.acquire(wait_timeout_seconds=wait_timeout_seconds):
        logger.info("event=checkout.lock_busy key=%s", lock.key)
        raise ConflictException(
            "Checkout already in progress",
            details={"lock_key": lock.key, "wait_timeout_seconds": wait_timeout_seconds},
        )
    try:
        yield
    finally:
        await lock.release()
