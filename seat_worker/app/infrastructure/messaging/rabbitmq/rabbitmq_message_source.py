"""
RabbitMQ implementation of MessageSource (aio_pika, pull mode).

Lifecycle:
  DISCONNECTED -> CONNECTING (backoff) -> READY -> CLOSING -> CLOSED.
  connect_robust restores the connection after broker restarts; unacked
  deliveries from a dropped channel are requeued by the broker.

Queue semantics mapping:
  receive           -> basic.get until a message arrives or the wait expires
  delete            -> ack
  extend_visibility -> hold the delivery unacked for `seconds`, then nack with
                       requeue. RabbitMQ has no visibility timeout; holding the
                       delivery keeps it invisible to other consumers meanwhile.
"""
from __future__ import annotations

import asyncio
import uuid
from typing import Any

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)
from loguru import logger

from seat_worker.app.config.settings import Settings
from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.core.backoff import exponential_backoff
from seat_worker.app.domain.models import QueueMessage
from seat_worker.app.infrastructure.messaging.rabbitmq.constants import SourceState


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQMessageSource:
    """MessageSource implementation"""

    def __init__(self, settings: Settings, *, queue: AbstractQueue | None = None) -> None:
        self._settings = settings
        self._state = SourceState.READY if queue is not None else SourceState.DISCONNECTED
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None
        self._queue = queue
        self._in_flight: dict[str, AbstractIncomingMessage] = {}
        self._release_tasks: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SourceState:
        return self._state

    def _build_amqp_url(self) -> str:
        return (
            f"amqp://{self._settings.broker_user}:{self._settings.broker_password}"
            f"@{self._settings.broker_host}:{self._settings.broker_port}/"
        )

    async def connect(self) -> None:
        self._state = SourceState.CONNECTING
        _log("rmq_connecting")
        async for attempt, delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            _log("rmq_connect_attempt", attempt=attempt, delay=delay)
            try:
                self._connection = await aio_pika.connect_robust(self._build_amqp_url())
                break
            except Exception as e:
                logger.warning("rmq connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("rmq_connect_failed", attempt=attempt)
                    self._state = SourceState.DISCONNECTED
                    raise
        self._channel = await self._connection.channel()
        self._queue = await self._channel.declare_queue(self._settings.queue_name, durable=True)
        self._state = SourceState.READY
        _log("rmq_connected", queue_name=self._settings.queue_name)

    async def receive(self, max_messages: int, wait_seconds: int) -> list[QueueMessage]:
        if self._queue is None:
            raise RuntimeError("message source not connected")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_seconds
        received: list[QueueMessage] = []
        while len(received) < max_messages:
            raw = await self._queue.get(no_ack=False, fail=False)
            if raw is None:
                remaining = deadline - loop.time()
                if received or remaining <= 0:
                    break
                await asyncio.sleep(min(self._settings.broker_poll_interval_seconds, remaining))
                continue
            received.append(self._track(raw))
        return received

    async def delete(self, message: QueueMessage) -> None:
        raw = self._in_flight.get(message.receipt_handle)
        if raw is None:
            return
        # Stays tracked until the ack goes through so a retry can ack it again.
        await raw.ack()
        self._in_flight.pop(message.receipt_handle, None)

    async def extend_visibility(self, message: QueueMessage, seconds: int) -> None:
        raw = self._in_flight.get(message.receipt_handle)
        if raw is None:
            return
        if seconds <= 0:
            await raw.nack(requeue=True)
            self._in_flight.pop(message.receipt_handle, None)
            return
        self._in_flight.pop(message.receipt_handle, None)
        task = asyncio.create_task(self._requeue_after(raw, seconds))
        self._release_tasks.add(task)
        task.add_done_callback(self._release_tasks.discard)

    async def close(self) -> None:
        self._state = SourceState.CLOSING
        _log("rmq_source_closing", held=len(self._release_tasks), in_flight=len(self._in_flight))
        for task in list(self._release_tasks):
            task.cancel()
        if self._release_tasks:
            await asyncio.gather(*self._release_tasks, return_exceptions=True)
        self._in_flight.clear()
        self._queue = None
        if self._channel is not None:
            try:
                await self._channel.close()
            except Exception as e:
                logger.warning("channel close failed (continuing to close connection): {}", e)
            self._channel = None
        if self._connection is not None:
            try:
                await self._connection.close()
            except Exception as e:
                logger.warning("connection close failed: {}", e)
            self._connection = None
        self._state = SourceState.CLOSED

    def _track(self, raw: AbstractIncomingMessage) -> QueueMessage:
        receipt_handle = uuid.uuid4().hex
        try:
            body = raw.body.decode()
        except UnicodeDecodeError:
            # Undecodable bytes still flow through the pipeline; the processor rejects them.
            logger.warning("message body is not valid utf-8, replacing bad bytes: {}", raw.message_id)
            body = raw.body.decode(errors="replace")
        message = QueueMessage(
            message_id=raw.message_id or receipt_handle,
            receipt_handle=receipt_handle,
            body=body,
            receive_count=2 if raw.redelivered else 1,
        )
        self._in_flight[receipt_handle] = raw
        return message

    async def _requeue_after(self, raw: AbstractIncomingMessage, seconds: int) -> None:
        await asyncio.sleep(seconds)
        try:
            await raw.nack(requeue=True)
        except Exception as e:
            # Channel gone; the broker requeues unacked deliveries on its own.
            logger.warning("delayed requeue failed: {}", e)
