"""Worker composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from seat_worker.app.application.reservation_processor import SeatReservationProcessor
from seat_worker.app.config.settings import Settings
from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.infrastructure.messaging.factory import create_message_source
from seat_worker.app.infrastructure.persistence.factory import create_seat_repository
from seat_worker.app.messaging.receiver import Receiver
from seat_worker.app.messaging.supervisor import Supervisor
from seat_worker.app.messaging.worker_pool import WorkerPool
from seat_worker.app.ports.business_processor import BusinessProcessor
from seat_worker.app.ports.message_source import MessageSource
from seat_worker.app.ports.seat_repository import SeatRepository


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_supervisor(
    settings: Settings,
    source: MessageSource,
    processor: BusinessProcessor,
) -> Supervisor:
    receiver = Receiver(
        source,
        batch_size=settings.poll_batch_size,
        wait_seconds=settings.poll_wait_seconds,
        error_delay_seconds=settings.poll_error_delay_seconds,
    )
    pool = WorkerPool(
        source,
        processor,
        size=settings.num_workers,
        failure_visibility_timeout_seconds=settings.failure_visibility_timeout_seconds,
        ack_max_attempts=settings.ack_max_attempts,
        ack_initial_backoff_seconds=settings.initial_backoff_seconds,
        ack_max_backoff_seconds=settings.max_backoff_seconds,
    )
    return Supervisor(
        receiver,
        pool,
        channel_capacity=settings.channel_capacity,
        shutdown_grace_seconds=settings.shutdown_grace_seconds,
    )


class WorkerDependencies:
    """Holds wired worker dependencies and their lifecycle."""

    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._repository: SeatRepository | None = None
        self._message_source: MessageSource | None = None
        self._processor: BusinessProcessor | None = None
        self._supervisor: Supervisor | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def message_source(self) -> MessageSource:
        if self._message_source is None:
            raise RuntimeError("message_source is not initialized")
        return self._message_source

    @property
    def supervisor(self) -> Supervisor:
        if self._supervisor is None:
            raise RuntimeError("supervisor is not initialized")
        return self._supervisor

    async def connect(self) -> None:
        self._repository = await create_seat_repository(self._settings)

        self._message_source = create_message_source(self._settings)
        await self._message_source.connect()

        self._processor = SeatReservationProcessor(self._repository)
        self._supervisor = build_supervisor(self._settings, self._message_source, self._processor)
        _log(
            "dependencies_ready",
            queue_backend=self._settings.queue_backend,
            repository_backend=self._settings.repository_backend,
            workers=self._settings.num_workers,
        )

    async def close(self) -> None:
        if self._message_source is not None:
            try:
                await self._message_source.close()
            except Exception as exc:
                logger.warning("message source close failed: {}", exc)
            self._message_source = None

        if self._repository is not None:
            try:
                await self._repository.close()
            except Exception as exc:
                logger.warning("repository close failed: {}", exc)

        self._repository = None
        self._processor = None
        self._supervisor = None


def create_worker_dependencies(settings: Settings | None = None) -> WorkerDependencies:
    return WorkerDependencies(settings=settings or Settings())
