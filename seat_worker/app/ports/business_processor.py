"""Port: the business operation applied to one message."""
from __future__ import annotations

from typing import Protocol

from seat_worker.app.domain.models import ProcessingOutcome, QueueMessage


class BusinessProcessor(Protocol):
    """Applies the domain update for one message. May raise; must tolerate redelivery."""

    async def process(self, message: QueueMessage) -> ProcessingOutcome: ...
