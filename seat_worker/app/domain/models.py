"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass


class InvalidReservationError(ValueError):
    """Raised when a message body is not a valid seat reservation request."""


@dataclass(frozen=True)
class QueueMessage:
    """One received queue message. `receipt_handle` identifies it for acknowledgment."""

    message_id: str
    receipt_handle: str
    body: str
    receive_count: int = 1


@dataclass(frozen=True)
class ProcessingOutcome:
    """Result of processing one message; selects delete vs. visibility extension."""

    succeeded: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> "ProcessingOutcome":
        return cls(succeeded=True)

    @classmethod
    def failure(cls, reason: str) -> "ProcessingOutcome":
        return cls(succeeded=False, reason=reason)


@dataclass(frozen=True)
class SeatReservation:
    """Parsed seat reservation request."""

    performance_id: str
    quantity: int
    request_id: str

    def __post_init__(self) -> None:
        if not isinstance(self.performance_id, str) or not self.performance_id:
            raise InvalidReservationError("reservation.performance_id must be a non-empty str")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise InvalidReservationError("reservation.quantity must be a positive int")
        if not isinstance(self.request_id, str) or not self.request_id:
            raise InvalidReservationError("reservation.request_id must be a non-empty str")
