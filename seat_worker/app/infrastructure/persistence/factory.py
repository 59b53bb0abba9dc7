"""Repository factory: selects and assembles persistence adapters."""
from __future__ import annotations

from seat_worker.app.config.settings import Settings
from seat_worker.app.infrastructure.persistence.mongo.connection import create_mongo_client
from seat_worker.app.infrastructure.persistence.mongo.mongo_repository import MongoSeatRepository
from seat_worker.app.ports.seat_repository import SeatRepository


async def create_seat_repository(settings: Settings) -> SeatRepository:
    """Select repository adapter from configuration and return port type."""
    backend = settings.repository_backend

    if backend == "mongo":
        mongo_client = await create_mongo_client(settings)
        repo = MongoSeatRepository(
            mongo_client[settings.database_name][settings.database_collection],
            client=mongo_client,
            applied_requests_window=settings.applied_requests_window,
        )
        await repo.ensure_indexes()
        return repo
    raise ValueError(f"Unsupported repository backend: {backend}")
