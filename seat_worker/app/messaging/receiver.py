"""Receiver loop: long-polls the message source and feeds the dispatch channel."""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from seat_worker.app.constants import UNIT
from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.domain.models import QueueMessage
from seat_worker.app.ports.message_source import MessageSource


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, unit=UNIT.RECEIVER, **kwargs).info("")


class Receiver:
    """Single producer for the dispatch channel.

    `put` blocks while the channel is full, so a slow worker pool slows the
    poll rate instead of growing memory. A failed poll is logged and retried
    on the next iteration; only the stop event or cancellation ends the loop.
    """

    def __init__(
        self,
        source: MessageSource,
        *,
        batch_size: int,
        wait_seconds: int,
        error_delay_seconds: float = 0.0,
    ) -> None:
        self._source = source
        self._batch_size = batch_size
        self._wait_seconds = wait_seconds
        self._error_delay_seconds = error_delay_seconds
        self.polls = 0

    async def run(self, channel: asyncio.Queue[QueueMessage], stopping: asyncio.Event) -> None:
        _log("receiver_started", batch_size=self._batch_size, wait_seconds=self._wait_seconds)
        try:
            while not stopping.is_set():
                try:
                    self.polls += 1
                    messages = await self._source.receive(self._batch_size, self._wait_seconds)
                    _log("messages_received", count=len(messages))
                    for message in messages:
                        await channel.put(message)
                    await asyncio.sleep(0)
                except Exception as exc:
                    logger.bind(service_name=SERVICE_NAME, unit=UNIT.RECEIVER).exception(
                        "receive failed, retrying: {}", exc
                    )
                    await asyncio.sleep(self._error_delay_seconds)
        except asyncio.CancelledError:
            _log("receiver_cancelled")
            raise
        finally:
            _log("receiver_exiting")
