"""Port: queue service the worker consumes from. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol

from seat_worker.app.domain.models import QueueMessage


class MessageSource(Protocol):
    """Long-poll receive, delete and extend-visibility against a durable queue."""

    async def connect(self) -> None: ...

    async def receive(self, max_messages: int, wait_seconds: int) -> list[QueueMessage]:
        """Wait up to `wait_seconds` for messages. Returns [] when none arrive; raises only on real errors."""
        ...

    async def delete(self, message: QueueMessage) -> None:
        """Acknowledge the message. Idempotent."""
        ...

    async def extend_visibility(self, message: QueueMessage, seconds: int) -> None:
        """Reset the redelivery countdown of a received message to `seconds`."""
        ...

    async def close(self) -> None: ...
