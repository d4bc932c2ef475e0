import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.utils.distributed_lock import CHECKOUT_LOCK_PREFIX, RedisLock, checkout_lock
from app.utils.exceptions import ConflictException


class FakeRedis:
    def __init__(self, *, fail_release: bool = False):
        self.store: dict[str, str] = {}
        self.fail_release = fail_release

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def eval(self, script, numkeys, key, token):
        if self.fail_release:
            raise RedisConnectionError("connection reset")
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.mark.asyncio
async def test_checkout_lock_is_noop_without_redis():
    async with checkout_lock(None, "abc"):
        pass


@pytest.mark.asyncio
async def test_double_submit_is_rejected_and_lock_released():
    redis = FakeRedis()
    key = CHECKOUT_LOCK_PREFIX + "abc"

    async with checkout_lock(redis, "abc"):
        assert key in redis.store
        with pytest.raises(ConflictException, match="Checkout already in progress"):
            async with checkout_lock(redis, "abc"):
                pass

    assert key not in redis.store

    async with checkout_lock(redis, "abc"):
        pass


@pytest.mark.asyncio
async def test_other_sessions_do_not_contend():
    redis = FakeRedis()

    async with checkout_lock(redis, "first"):
        async with checkout_lock(redis, "second"):
            assert len(redis.store) == 2


@pytest.mark.asyncio
async def test_acquire_gives_up_after_wait_timeout():
    redis = FakeRedis()
    redis.store["dlock:busy"] = "someone-else"
    lock = RedisLock(redis, "dlock:busy", poll_interval_seconds=0.01)

    assert await lock.acquire(wait_timeout_seconds=0.05) is False
    assert lock.held is False


@pytest.mark.asyncio
async def test_release_keeps_a_lock_taken_over_after_expiry():
    redis = FakeRedis()
    lock = RedisLock(redis, "dlock:expired")
    assert await lock.acquire()

    redis.store["dlock:expired"] = "new-owner"
    await lock.release()

    assert redis.store["dlock:expired"] == "new-owner"


@pytest.mark.asyncio
async def test_release_failure_does_not_mask_body_result():
    redis = FakeRedis(fail_release=True)

    async with checkout_lock(redis, "flaky"):
        value = 42

    assert value == 42


def test_lock_rejects_invalid_ttl():
    with pytest.raises(ValueError):
        RedisLock(FakeRedis(), "k", ttl_seconds=0)
