"""
Supervisor: owns the dispatch channel, the receiver task and the worker tasks.

Lifecycle:
  start() -> channel + N worker tasks + 1 receiver task
  stop()  -> set stop event, cancel receiver and idle workers, give busy
             workers `shutdown_grace_seconds` to finish their in-flight
             message, cancel whatever is left, collect every task result.

Each unit contains its own per-message and per-poll errors. A unit that still
dies (a bug) is logged by a done-callback; its siblings keep running.
"""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from seat_worker.app.constants import UNIT
from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.domain.models import QueueMessage
from seat_worker.app.messaging.receiver import Receiver
from seat_worker.app.messaging.worker_pool import WorkerPool


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class Supervisor:
    def __init__(
        self,
        receiver: Receiver,
        pool: WorkerPool,
        *,
        channel_capacity: int,
        shutdown_grace_seconds: float = 30.0,
    ) -> None:
        if channel_capacity < 1:
            raise ValueError("channel capacity must be >= 1")
        self._receiver = receiver
        self._pool = pool
        self._channel_capacity = channel_capacity
        self._shutdown_grace_seconds = shutdown_grace_seconds
        self._stopping = asyncio.Event()
        self._channel: asyncio.Queue[QueueMessage] | None = None
        self._receiver_task: asyncio.Task[None] | None = None
        self._worker_tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def channel(self) -> asyncio.Queue[QueueMessage]:
        if self._channel is None:
            raise RuntimeError("supervisor is not started")
        return self._channel

    @property
    def running(self) -> bool:
        tasks = list(self._worker_tasks.values())
        if self._receiver_task is not None:
            tasks.append(self._receiver_task)
        return any(not task.done() for task in tasks)

    def start(self) -> None:
        if self._channel is not None:
            raise RuntimeError("supervisor already started")
        self._channel = asyncio.Queue(maxsize=self._channel_capacity)
        for unit in self._pool.unit_names:
            task = asyncio.create_task(
                self._pool.run_worker(unit, self._channel, self._stopping),
                name=unit,
            )
            task.add_done_callback(self._on_unit_done)
            self._worker_tasks[unit] = task
        self._receiver_task = asyncio.create_task(
            self._receiver.run(self._channel, self._stopping),
            name=UNIT.RECEIVER,
        )
        self._receiver_task.add_done_callback(self._on_unit_done)
        _log("supervisor_started", workers=self._pool.size, channel_capacity=self._channel_capacity)

    async def run(self, shutdown: asyncio.Event) -> None:
        """Start all units, block until `shutdown` is set, then stop gracefully."""
        self.start()
        try:
            await shutdown.wait()
        finally:
            await self.stop()

    async def stop(self) -> None:
        if self._stopping.is_set():
            return
        self._stopping.set()
        _log("supervisor_stopping")

        if self._receiver_task is not None:
            self._receiver_task.cancel()

        busy: list[asyncio.Task[None]] = []
        for unit, task in self._worker_tasks.items():
            if task.done():
                continue
            if self._pool.is_busy(unit):
                busy.append(task)
            else:
                task.cancel()

        if busy:
            _log("supervisor_waiting_for_in_flight", count=len(busy))
            _, pending = await asyncio.wait(busy, timeout=self._shutdown_grace_seconds)
            for task in pending:
                logger.bind(service_name=SERVICE_NAME, unit=task.get_name()).warning(
                    "in-flight message did not finish within {}s, cancelling",
                    self._shutdown_grace_seconds,
                )
                task.cancel()

        tasks = list(self._worker_tasks.values())
        if self._receiver_task is not None:
            tasks.append(self._receiver_task)
        await asyncio.gather(*tasks, return_exceptions=True)
        _log("supervisor_stopped")

    def _on_unit_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.bind(service_name=SERVICE_NAME, unit=task.get_name()).opt(exception=exc).error(
                "unit terminated unexpectedly: {}", exc
            )
        elif not self._stopping.is_set():
            logger.bind(service_name=SERVICE_NAME, unit=task.get_name()).warning("unit exited before shutdown")
