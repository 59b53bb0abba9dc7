"""MongoDB implementation of SeatRepository."""
from __future__ import annotations

import inspect
from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection

DEFAULT_APPLIED_REQUESTS_WINDOW = 1000


class MongoSeatRepository:
    """
    One document per performance: remaining_seats plus the most recent request ids applied.

    `applied_requests` is capped at `applied_requests_window` entries with $push/$slice,
    oldest first out, so the document never grows toward the BSON size limit.
    """

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        *,
        client: Any | None = None,
        applied_requests_window: int = DEFAULT_APPLIED_REQUESTS_WINDOW,
    ) -> None:
        if applied_requests_window < 1:
            raise ValueError("applied_requests_window must be >= 1")
        self._collection = collection
        self._client = client
        self._applied_requests_window = applied_requests_window

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._collection.create_index("performance_id", unique=True, name="uq_performance_id")

    async def get_performance(self, performance_id: str) -> dict[str, Any] | None:
        return await self._collection.find_one({"performance_id": performance_id})

    async def apply_reservation(
        self,
        performance_id: str,
        request_id: str,
        remaining_seats: int,
    ) -> None:
        now = datetime.now(timezone.utc)
        result = await self._collection.update_one(
            {"performance_id": performance_id},
            {
                "$set": {
                    "remaining_seats": int(remaining_seats),
                    "updated_at": now,
                },
                "$push": {
                    "applied_requests": {
                        "$each": [request_id],
                        "$slice": -self._applied_requests_window,
                    },
                },
            },
        )
        if result.matched_count == 0:
            raise LookupError(f"performance not found: {performance_id}")

    async def create_performance(self, performance_id: str, total_seats: int) -> None:
        """Seed a performance if it does not exist yet. Used by tooling and tests."""
        now = datetime.now(timezone.utc)
        await self._collection.update_one(
            {"performance_id": performance_id},
            {
                "$setOnInsert": {
                    "performance_id": performance_id,
                    "total_seats": int(total_seats),
                    "remaining_seats": int(total_seats),
                    "applied_requests": [],
                    "created_at": now,
                    "updated_at": now,
                },
            },
            upsert=True,
        )

    async def close(self) -> None:
        """Close underlying Mongo client when owned by this adapter."""
        if self._client is not None:
            res = self._client.close()
            if inspect.isawaitable(res):
                await res
