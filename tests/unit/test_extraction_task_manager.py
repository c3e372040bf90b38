"""Unit tests for the extraction job queue."""

from __future__ import annotations

from typing import Any

import pytest

from app.services import extraction_task_manager as task_manager_module
from app.services.extraction_task_manager import (
    ExtractionJob,
    ExtractionQueueFullError,
    ExtractionTaskManager,
    get_extraction_task_manager,
)


@pytest.fixture
def manager(monkeypatch: Any, fake_redis) -> ExtractionTaskManager:
    monkeypatch.setattr(task_manager_module, "get_redis_client", lambda: fake_redis)
    return ExtractionTaskManager(worker_count=2, queue_size=2)


def test_extraction_task_manager_singleton() -> None:
    assert get_extraction_task_manager() is get_extraction_task_manager()


def test_limits_are_at_least_one(monkeypatch: Any, fake_redis) -> None:
    monkeypatch.setattr(task_manager_module, "get_redis_client", lambda: fake_redis)
    manager = ExtractionTaskManager(worker_count=0, queue_size=-5)

    assert manager.worker_count == 1
    assert manager.queue_size_limit == 1


def test_extraction_job_serialize_roundtrip(manager: ExtractionTaskManager) -> None:
    payload = manager._serialize_job(ExtractionJob(kind="resume", entity_id="rst_1"))

    assert payload == '{"kind":"resume","entity_id":"rst_1"}'
    decoded = manager._deserialize_job(payload)
    assert decoded == ExtractionJob(kind="resume", entity_id="rst_1")


@pytest.mark.parametrize(
    "payload",
    [
        '{"kind":"explode","entity_id":"rst_1"}',
        '{"kind":"start","entity_id":""}',
        '{"kind":"start"}',
        "not json",
    ],
)
def test_deserialize_rejects_bad_payloads(manager: ExtractionTaskManager, payload: str) -> None:
    with pytest.raises((ValueError, KeyError)):
        manager._deserialize_job(payload)


@pytest.mark.asyncio
async def test_enqueue_and_pop_in_fifo_order(manager: ExtractionTaskManager) -> None:
    await manager.enqueue_start(entity_id="rst_1")
    await manager.enqueue_rerun(entity_id="htl_2")

    assert await manager.get_queue_size() == 2
    assert await manager.pop_next(timeout_seconds=1) == ExtractionJob(kind="start", entity_id="rst_1")
    assert await manager.pop_next(timeout_seconds=1) == ExtractionJob(kind="rerun", entity_id="htl_2")
    assert await manager.pop_next(timeout_seconds=1) is None


@pytest.mark.asyncio
async def test_enqueue_rejects_when_full(manager: ExtractionTaskManager) -> None:
    await manager.enqueue_start(entity_id="rst_1")
    await manager.enqueue_resume(entity_id="rst_2")

    with pytest.raises(ExtractionQueueFullError):
        await manager.enqueue_resume(entity_id="rst_3")
    with pytest.raises(ExtractionQueueFullError):
        await manager.ensure_capacity()

    assert await manager.get_queue_size() == 2


@pytest.mark.asyncio
async def test_requeue_ignores_capacity(manager: ExtractionTaskManager) -> None:
    await manager.enqueue_start(entity_id="rst_1")
    await manager.enqueue_start(entity_id="rst_2")

    await manager.requeue(ExtractionJob(kind="resume", entity_id="rst_3"))

    assert await manager.get_queue_size() == 3


@pytest.mark.asyncio
async def test_pop_drops_malformed_payload(manager: ExtractionTaskManager, fake_redis) -> None:
    await fake_redis.rpush(ExtractionTaskManager.QUEUE_KEY, '{"kind":"bogus","entity_id":"x"}')

    assert await manager.pop_next(timeout_seconds=1) is None
    assert await manager.get_queue_size() == 0
