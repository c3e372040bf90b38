"""Shared fakes for extraction engine unit tests."""

from __future__ import annotations

import copy
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from app.core.db_kernel import ConflictError
from app.core.exceptions import EntityNotFoundError
from app.services.extraction_orchestrator import ExtractionOrchestrator, RetryPolicy
from app.services.progress_store import EntityRecord, ProgressStore
from app.services.run_lock import RunLock
from app.services.steps.base_step import StepAdapter, StepContext, StepResult


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the run lock and the queue."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.lists: dict[str, list[str]] = {}

    async def set(self, key: str, value: str, *, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def exists(self, key: str) -> int:
        return int(key in self.values)

    async def delete(self, key: str) -> int:
        self.ttls.pop(key, None)
        return int(self.values.pop(key, None) is not None)

    async def eval(self, script: str, numkeys: int, key: str, token: str, *args: str) -> int:
        if self.values.get(key) != token:
            return 0
        if '"expire"' in script:
            self.ttls[key] = int(args[0])
            return 1
        return await self.delete(key)

    def expire_now(self, key: str) -> None:
        """Simulate TTL expiry."""
        self.values.pop(key, None)
        self.ttls.pop(key, None)

    async def llen(self, key: str) -> int:
        return len(self.lists.get(key, []))

    async def rpush(self, key: str, value: str) -> int:
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def blpop(self, key: str, timeout: int = 0) -> tuple[str, str] | None:
        queue = self.lists.get(key)
        if not queue:
            return None
        return key, queue.pop(0)


class InMemoryProgressStore(ProgressStore):
    """Progress store over a dict; every write is counted."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        super().__init__(clock=clock)
        self.records: dict[str, EntityRecord] = {}
        self.writes: list[str] = []

    def put(self, record: EntityRecord) -> EntityRecord:
        self.records[record.id] = copy.deepcopy(record)
        return record

    async def _read(self, entity_id: str) -> EntityRecord:
        if entity_id not in self.records:
            raise EntityNotFoundError(entity_id)
        return copy.deepcopy(self.records[entity_id])

    async def _mutate(self, entity_id, mutator, *, operation_name: str) -> EntityRecord:
        if entity_id not in self.records:
            raise EntityNotFoundError(entity_id)
        record = copy.deepcopy(self.records[entity_id])
        mutator(record)
        self.records[entity_id] = record
        self.writes.append(operation_name)
        return copy.deepcopy(record)

    async def _insert(self, record: EntityRecord) -> None:
        for existing in self.records.values():
            if (
                record.place_id
                and existing.entity_type == record.entity_type
                and existing.place_id == record.place_id
            ):
                raise ConflictError("duplicate key")
        self.records[record.id] = copy.deepcopy(record)
        self.writes.append("progress.create_entity")

    async def _find_by_place(self, entity_type: str, place_id: str) -> EntityRecord | None:
        for record in self.records.values():
            if record.entity_type == entity_type and record.place_id == place_id:
                return copy.deepcopy(record)
        return None

    async def _list(self, entity_type: str, *, status: str | None, limit: int) -> list[EntityRecord]:
        matches = [
            copy.deepcopy(record)
            for record in self.records.values()
            if record.entity_type == entity_type
            and (status is None or record.extraction_status == status)
        ]
        return matches[:limit]


class ScriptedAdapter(StepAdapter):
    """Adapter that replays a script of results/exceptions, repeating the last entry."""

    def __init__(self, name: str, *outcomes: StepResult | BaseException) -> None:
        self.name = name
        self.outcomes = list(outcomes) or [StepResult()]
        self.calls: list[StepContext] = []

    async def execute(self, context: StepContext) -> StepResult:
        self.calls.append(context)
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_record(entity_id: str = "rst_test", **overrides: Any) -> EntityRecord:
    values: dict[str, Any] = {
        "id": entity_id,
        "entity_type": "restaurant",
        "name": "Fisherman's Wharf",
        "slug": "fishermans-wharf-goa",
        "place_id": "ChIJtest",
    }
    values.update(overrides)
    return EntityRecord(**values)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryProgressStore:
    return InMemoryProgressStore(clock)


@pytest.fixture
def run_lock(fake_redis: FakeRedis) -> RunLock:
    return RunLock(redis=fake_redis, ttl_seconds=60)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def orchestrator(
    store: InMemoryProgressStore,
    run_lock: RunLock,
    sleeps: SleepRecorder,
) -> ExtractionOrchestrator:
    policy = RetryPolicy(
        max_attempts=3,
        base_delay_seconds=2.0,
        max_delay_seconds=30.0,
        step_timeout_seconds=5.0,
    )
    return ExtractionOrchestrator(store, run_lock, retry_policy=policy, sleep=sleeps)


@pytest.fixture
def scripted_adapter() -> type[ScriptedAdapter]:
    return ScriptedAdapter


@pytest.fixture
def record_factory() -> Callable[..., EntityRecord]:
    return make_record
