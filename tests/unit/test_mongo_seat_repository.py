"""Unit tests for MongoSeatRepository update documents and the repository factory."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest

from seat_worker.app.config.settings import Settings
from seat_worker.app.infrastructure.persistence.factory import create_seat_repository
from seat_worker.app.infrastructure.persistence.mongo.mongo_repository import MongoSeatRepository


class FakeCollection:
    def __init__(self, matched_count: int = 1) -> None:
        self._matched_count = matched_count
        self.updates: list[tuple[dict[str, Any], dict[str, Any], dict[str, Any]]] = []

    async def update_one(self, query: dict[str, Any], update: dict[str, Any], **kwargs: Any):
        self.updates.append((query, update, kwargs))
        return SimpleNamespace(matched_count=self._matched_count)


def test_apply_reservation_caps_applied_request_ids():
    collection = FakeCollection()
    repo = MongoSeatRepository(collection, applied_requests_window=50)

    asyncio.run(repo.apply_reservation("perf-1", "req-1", 7))

    ((query, update, _),) = collection.updates
    assert query == {"performance_id": "perf-1"}
    assert update["$set"]["remaining_seats"] == 7
    assert update["$push"] == {"applied_requests": {"$each": ["req-1"], "$slice": -50}}
    assert "$addToSet" not in update


def test_apply_reservation_on_missing_performance_raises():
    repo = MongoSeatRepository(FakeCollection(matched_count=0))

    with pytest.raises(LookupError, match="performance not found"):
        asyncio.run(repo.apply_reservation("missing", "req-1", 0))


def test_window_must_be_positive():
    with pytest.raises(ValueError):
        MongoSeatRepository(FakeCollection(), applied_requests_window=0)


def test_factory_rejects_unknown_repository_backend():
    with pytest.raises(ValueError, match="Unsupported repository backend"):
        asyncio.run(create_seat_repository(Settings(repository_backend="redis")))
