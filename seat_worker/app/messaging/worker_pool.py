"""
Worker pool: N identical workers draining the dispatch channel.

Per message:
  RECEIVED -> (acquire lock) -> PROCESSING -> (release lock)
    success -> delete (acknowledged, removed from the queue)
    failure -> extend visibility (queue redelivers it after the timeout)

One asyncio.Lock is shared by every worker, so at most one business update
runs at any instant. It is held only around `processor.process()`;
acknowledgment calls happen after release so queue latency never
serializes the pool.

Failed messages are redelivered without limit. There is no dead-letter
step here; a queue-side redrive policy is the only cap.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from loguru import logger

from seat_worker.app.constants import MESSAGE_FATE, worker_unit_name
from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.core.backoff import exponential_backoff
from seat_worker.app.domain.models import ProcessingOutcome, QueueMessage
from seat_worker.app.ports.business_processor import BusinessProcessor
from seat_worker.app.ports.message_source import MessageSource


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class WorkerPool:
    def __init__(
        self,
        source: MessageSource,
        processor: BusinessProcessor,
        *,
        size: int,
        failure_visibility_timeout_seconds: int,
        ack_max_attempts: int = 1,
        ack_initial_backoff_seconds: float = 0.5,
        ack_max_backoff_seconds: float = 5.0,
        processing_lock: asyncio.Lock | None = None,
    ) -> None:
        if size < 1:
            raise ValueError("worker pool size must be >= 1")
        self._source = source
        self._processor = processor
        self._size = size
        self._failure_visibility_timeout = failure_visibility_timeout_seconds
        self._ack_max_attempts = max(1, ack_max_attempts)
        self._ack_initial_backoff = ack_initial_backoff_seconds
        self._ack_max_backoff = ack_max_backoff_seconds
        self._lock = processing_lock or asyncio.Lock()
        self._busy: set[str] = set()

    @property
    def size(self) -> int:
        return self._size

    @property
    def processing_lock(self) -> asyncio.Lock:
        return self._lock

    @property
    def unit_names(self) -> list[str]:
        return [worker_unit_name(i) for i in range(self._size)]

    def is_busy(self, unit: str) -> bool:
        return unit in self._busy

    async def run_worker(
        self,
        unit: str,
        channel: asyncio.Queue[QueueMessage],
        stopping: asyncio.Event,
    ) -> None:
        _log("worker_started", unit=unit)
        try:
            while not stopping.is_set():
                message = await channel.get()
                try:
                    if stopping.is_set():
                        # Not acknowledged; the queue redelivers it after its visibility timeout.
                        _log("message_abandoned", unit=unit, message_id=message.message_id,
                             fate=MESSAGE_FATE.ABANDONED)
                        break
                    self._busy.add(unit)
                    await self.handle_message(unit, message)
                except Exception as exc:
                    logger.bind(service_name=SERVICE_NAME, unit=unit).exception(
                        "unexpected error handling message {}: {}", message.message_id, exc
                    )
                finally:
                    self._busy.discard(unit)
                    channel.task_done()
        except asyncio.CancelledError:
            _log("worker_cancelled", unit=unit)
            raise
        finally:
            _log("worker_exiting", unit=unit)

    async def handle_message(self, unit: str, message: QueueMessage) -> str:
        """Process one message under the shared lock, then acknowledge it. Returns its fate."""
        outcome = await self._process_exclusive(unit, message)
        if outcome.succeeded:
            return await self._acknowledge(
                unit,
                message,
                "delete",
                lambda: self._source.delete(message),
                MESSAGE_FATE.DELETED,
            )

        logger.bind(
            service_name=SERVICE_NAME,
            event="message_processing_failed",
            unit=unit,
            message_id=message.message_id,
            receive_count=message.receive_count,
            body=message.body,
        ).warning("processing failed: {}", outcome.reason)
        return await self._acknowledge(
            unit,
            message,
            "extend_visibility",
            lambda: self._source.extend_visibility(message, self._failure_visibility_timeout),
            MESSAGE_FATE.VISIBILITY_EXTENDED,
        )

    async def _process_exclusive(self, unit: str, message: QueueMessage) -> ProcessingOutcome:
        async with self._lock:
            try:
                outcome = await self._processor.process(message)
            except Exception as exc:
                logger.bind(service_name=SERVICE_NAME, unit=unit).exception(
                    "processor raised for message {}: {}", message.message_id, exc
                )
                outcome = ProcessingOutcome.failure(f"{type(exc).__name__}: {exc}")
        if outcome is None:
            outcome = ProcessingOutcome.failure("processor returned no outcome")
        return outcome

    async def _acknowledge(
        self,
        unit: str,
        message: QueueMessage,
        action: str,
        call: Callable[[], Awaitable[None]],
        fate: str,
    ) -> str:
        async for attempt, _ in exponential_backoff(
            self._ack_initial_backoff,
            self._ack_max_backoff,
            2.0,
            self._ack_max_attempts,
        ):
            try:
                await call()
                _log(
                    "message_acknowledged",
                    unit=unit,
                    action=action,
                    message_id=message.message_id,
                    fate=fate,
                )
                return fate
            except Exception as exc:
                logger.bind(service_name=SERVICE_NAME, unit=unit).opt(exception=True).warning(
                    "{} failed for message {} (attempt {}/{}): {}",
                    action,
                    message.message_id,
                    attempt,
                    self._ack_max_attempts,
                    exc,
                )
        # Left to the queue's own visibility timeout.
        _log("message_ack_failed", unit=unit, action=action, message_id=message.message_id,
             fate=MESSAGE_FATE.ACK_FAILED)
        return MESSAGE_FATE.ACK_FAILED
