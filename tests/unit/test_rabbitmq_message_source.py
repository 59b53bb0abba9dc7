"""Unit tests for RabbitMQMessageSource over a fake aio_pika queue."""
from __future__ import annotations

import asyncio

import pytest

from seat_worker.app.config.settings import Settings
from seat_worker.app.constants import MESSAGE_FATE
from seat_worker.app.infrastructure.messaging.rabbitmq.constants import SourceState
from seat_worker.app.infrastructure.messaging.rabbitmq.rabbitmq_message_source import RabbitMQMessageSource
from seat_worker.app.messaging.worker_pool import WorkerPool
from tests.fakes import RecordingProcessor


class FakeIncomingMessage:
    def __init__(
        self,
        body: str | bytes,
        *,
        message_id: str | None = None,
        redelivered: bool = False,
        ack_errors: list[Exception] | None = None,
    ) -> None:
        self.body = body if isinstance(body, bytes) else body.encode()
        self._ack_errors = list(ack_errors or [])
        self.ack_attempts = 0
        self.message_id = message_id
        self.redelivered = redelivered
        self.acked = False
        self.nacks: list[bool] = []

    async def ack(self) -> None:
        self.ack_attempts += 1
        if self._ack_errors:
            raise self._ack_errors.pop(0)
        self.acked = True

    async def nack(self, requeue: bool = True) -> None:
        self.nacks.append(requeue)


class FakeQueue:
    """Scripted basic.get results; None means the queue is empty at that moment."""

    def __init__(self, results: list[FakeIncomingMessage | None]) -> None:
        self._results = list(results)
        self.get_calls = 0

    async def get(self, *, no_ack: bool = False, fail: bool = True, timeout: float = 5):
        self.get_calls += 1
        if self._results:
            return self._results.pop(0)
        return None


def _settings() -> Settings:
    return Settings(queue_backend="rabbitmq", broker_poll_interval_seconds=0.01)


def test_receive_returns_available_messages_up_to_max():
    raws = [FakeIncomingMessage(f"body-{i}", message_id=f"m-{i}") for i in range(3)]
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue(raws))

    messages = asyncio.run(source.receive(2, 5))

    assert [m.body for m in messages] == ["body-0", "body-1"]
    assert [m.message_id for m in messages] == ["m-0", "m-1"]
    assert len({m.receipt_handle for m in messages}) == 2


def test_receive_returns_partial_batch_once_queue_is_empty():
    raws = [FakeIncomingMessage("a", message_id="m-a", redelivered=True), None]
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue(raws))

    messages = asyncio.run(source.receive(10, 5))

    assert len(messages) == 1
    assert messages[0].receive_count == 2


def test_receive_long_polls_until_a_message_arrives():
    queue = FakeQueue([None, None, FakeIncomingMessage("late", message_id="m-late")])
    source = RabbitMQMessageSource(_settings(), queue=queue)

    messages = asyncio.run(source.receive(10, 5))

    assert [m.body for m in messages] == ["late"]
    assert queue.get_calls >= 3


def test_receive_on_empty_queue_returns_empty_after_wait():
    queue = FakeQueue([])
    source = RabbitMQMessageSource(_settings(), queue=queue)

    assert asyncio.run(source.receive(10, 0)) == []
    assert queue.get_calls == 1


def test_delete_acks_once_and_is_idempotent():
    raw = FakeIncomingMessage("a", message_id="m-a")
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue([raw]))

    async def _run() -> None:
        (message,) = await source.receive(1, 0)
        await source.delete(message)
        await source.delete(message)

    asyncio.run(_run())

    assert raw.acked is True
    assert raw.nacks == []


def test_extend_visibility_with_zero_seconds_requeues_immediately():
    raw = FakeIncomingMessage("a", message_id="m-a")
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue([raw]))

    async def _run() -> None:
        (message,) = await source.receive(1, 0)
        await source.extend_visibility(message, 0)

    asyncio.run(_run())

    assert raw.nacks == [True]
    assert raw.acked is False


def test_extend_visibility_holds_delivery_then_requeues():
    raw = FakeIncomingMessage("a", message_id="m-a")
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue([raw]))

    async def _run() -> None:
        (message,) = await source.receive(1, 0)
        await source.extend_visibility(message, 1)
        await asyncio.sleep(0.05)
        assert raw.nacks == []
        await asyncio.sleep(1.1)

    asyncio.run(_run())

    assert raw.nacks == [True]


def test_close_drops_held_deliveries_without_nacking():
    raw = FakeIncomingMessage("a", message_id="m-a")
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue([raw]))

    async def _run() -> None:
        (message,) = await source.receive(1, 0)
        await source.extend_visibility(message, 30)
        await source.close()

    asyncio.run(_run())

    assert raw.nacks == []
    assert source.state == SourceState.CLOSED


def test_undecodable_body_does_not_strand_the_rest_of_the_batch():
    good = FakeIncomingMessage("ok", message_id="m-good")
    bad = FakeIncomingMessage(b"\xff\xfe", message_id="m-bad")
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue([good, bad]))

    async def _run() -> list[str]:
        messages = await source.receive(10, 0)
        for message in messages:
            await source.delete(message)
        return [m.body for m in messages]

    bodies = asyncio.run(_run())

    assert bodies[0] == "ok"
    assert "\ufffd" in bodies[1]
    assert good.acked is True
    assert bad.acked is True
    assert source._in_flight == {}


def test_failed_ack_keeps_delivery_tracked_for_a_retry():
    raw = FakeIncomingMessage("a", message_id="m-a", ack_errors=[ConnectionError("channel closed")])
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue([raw]))

    async def _run() -> None:
        (message,) = await source.receive(1, 0)
        with pytest.raises(ConnectionError):
            await source.delete(message)
        assert raw.acked is False
        await source.delete(message)

    asyncio.run(_run())

    assert raw.acked is True
    assert raw.ack_attempts == 2
    assert source._in_flight == {}


def test_worker_ack_retry_reaches_the_broker_after_a_failed_ack():
    raw = FakeIncomingMessage("a", message_id="m-a", ack_errors=[ConnectionError("channel closed")])
    source = RabbitMQMessageSource(_settings(), queue=FakeQueue([raw]))
    pool = WorkerPool(
        source,
        RecordingProcessor(),
        size=1,
        failure_visibility_timeout_seconds=10,
        ack_max_attempts=3,
        ack_initial_backoff_seconds=0.0,
        ack_max_backoff_seconds=0.0,
    )

    async def _run() -> str:
        (message,) = await source.receive(1, 0)
        return await pool.handle_message("worker-0", message)

    fate = asyncio.run(_run())

    assert fate == MESSAGE_FATE.DELETED
    assert raw.acked is True
    assert raw.ack_attempts == 2
