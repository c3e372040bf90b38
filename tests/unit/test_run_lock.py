"""Unit tests for the per-entity run lock."""

import pytest

from app.core.exceptions import AlreadyRunningError
from app.services.run_lock import RunLock


@pytest.mark.asyncio
async def test_acquire_sets_key_with_ttl(run_lock: RunLock, fake_redis) -> None:
    lease = await run_lock.acquire("rst_1")

    assert fake_redis.values[RunLock.key("rst_1")] == lease.token
    assert fake_redis.ttls[RunLock.key("rst_1")] == 60
    assert await run_lock.is_held("rst_1")


@pytest.mark.asyncio
async def test_second_acquire_fails_fast(run_lock: RunLock) -> None:
    await run_lock.acquire("rst_1")

    with pytest.raises(AlreadyRunningError) as exc_info:
        await run_lock.acquire("rst_1")

    assert exc_info.value.entity_id == "rst_1"


@pytest.mark.asyncio
async def test_locks_are_per_entity(run_lock: RunLock) -> None:
    first = await run_lock.acquire("rst_1")
    second = await run_lock.acquire("rst_2")

    assert first.token != second.token


@pytest.mark.asyncio
async def test_context_manager_releases_on_error(run_lock: RunLock) -> None:
    with pytest.raises(RuntimeError):
        async with await run_lock.acquire("rst_1"):
            raise RuntimeError("adapter crashed")

    assert not await run_lock.is_held("rst_1")
    lease = await run_lock.acquire("rst_1")
    await lease.release()


@pytest.mark.asyncio
async def test_refresh_extends_only_own_lease(run_lock: RunLock, fake_redis) -> None:
    lease = await run_lock.acquire("rst_1")
    fake_redis.ttls[RunLock.key("rst_1")] = 3

    assert await lease.refresh()
    assert fake_redis.ttls[RunLock.key("rst_1")] == 60


@pytest.mark.asyncio
async def test_expired_lease_cannot_release_new_holder(run_lock: RunLock, fake_redis) -> None:
    stale = await run_lock.acquire("rst_1")
    fake_redis.expire_now(RunLock.key("rst_1"))
    fresh = await run_lock.acquire("rst_1")

    assert not await stale.refresh()
    await stale.release()

    assert fake_redis.values[RunLock.key("rst_1")] == fresh.token


@pytest.mark.asyncio
async def test_release_is_idempotent(run_lock: RunLock, fake_redis) -> None:
    lease = await run_lock.acquire("rst_1")

    await lease.release()
    await lease.release()

    assert lease.released
    assert fake_redis.values == {}
