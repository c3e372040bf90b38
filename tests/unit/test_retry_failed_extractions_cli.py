"""Unit tests for the retry-failed-extractions maintenance script."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from app.services.extraction_task_manager import ExtractionQueueFullError
from scripts import retry_failed_extractions as cli


class _FakeTaskManager:
    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.resumed: list[str] = []

    async def enqueue_resume(self, *, entity_id: str) -> None:
        if len(self.resumed) >= self.capacity:
            raise ExtractionQueueFullError("full")
        self.resumed.append(entity_id)


class _FakeService:
    def __init__(self, records: list[Any], capacity: int = 10) -> None:
        self.records = records
        self.task_manager = _FakeTaskManager(capacity)
        self.list_calls: list[tuple[str, str | None, int]] = []

    async def list_entities(self, entity_type: str, *, status: str | None = None, limit: int = 50):
        self.list_calls.append((entity_type, status, limit))
        return self.records


@pytest.fixture
def records(record_factory) -> list[Any]:
    return [
        record_factory("rst_a", extraction_status="failed", failed_step="place_details"),
        record_factory("rst_b", extraction_status="failed", failed_step="ai_enhancement"),
        record_factory("rst_c", extraction_status="failed", failed_step="rating"),
    ]


@pytest.fixture
def patch_cli(monkeypatch: Any):
    closers = {"redis": AsyncMock(), "db": AsyncMock()}

    def _patch(service: _FakeService) -> dict[str, AsyncMock]:
        monkeypatch.setattr(cli, "get_extraction_service", lambda: service)
        monkeypatch.setattr(cli, "close_redis", closers["redis"])
        monkeypatch.setattr(cli, "close_db", closers["db"])
        return closers

    return _patch


def test_parse_args() -> None:
    args = cli.parse_args(["--entity-type", "hotel", "--limit", "5", "--dry-run"])

    assert (args.entity_type, args.limit, args.dry_run) == ("hotel", 5, True)


def test_parse_args_rejects_unknown_type() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--entity-type", "spaceport"])


@pytest.mark.asyncio
async def test_retry_failed_queues_resumptions(records, patch_cli) -> None:
    service = _FakeService(records)
    closers = patch_cli(service)

    queued = await cli.retry_failed(entity_type="restaurant", limit=25, dry_run=False)

    assert queued == 3
    assert service.task_manager.resumed == ["rst_a", "rst_b", "rst_c"]
    assert service.list_calls == [("restaurant", "failed", 25)]
    closers["redis"].assert_awaited_once()
    closers["db"].assert_awaited_once()


@pytest.mark.asyncio
async def test_retry_failed_dry_run_queues_nothing(records, patch_cli, capsys) -> None:
    service = _FakeService(records)
    patch_cli(service)

    queued = await cli.retry_failed(entity_type="restaurant", limit=25, dry_run=True)

    assert queued == 3
    assert service.task_manager.resumed == []
    assert "would retry rst_b" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_retry_failed_stops_when_queue_full(records, patch_cli) -> None:
    service = _FakeService(records, capacity=2)
    patch_cli(service)

    queued = await cli.retry_failed(entity_type="restaurant", limit=25, dry_run=False)

    assert queued == 2
