from __future__ import annotations

import json
from typing import Any

from loguru import logger

from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.domain.models import (
    InvalidReservationError,
    ProcessingOutcome,
    QueueMessage,
    SeatReservation,
)
from seat_worker.app.ports.seat_repository import SeatRepository


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class SeatReservationProcessor:
    """
    Decrements the remaining seats of a performance for one reservation message.

    The update is a plain read-modify-write against the repository. It is only
    correct while every call runs inside the worker pool's critical section;
    this class takes no lock of its own.

    A request id that was already applied is reported as success without a
    second decrement, so a redelivered message is harmless.
    """

    def __init__(self, repository: SeatRepository) -> None:
        self._repository = repository

    async def process(self, message: QueueMessage) -> ProcessingOutcome:
        reservation = self._deserialize_message(message.body)
        performance_id = reservation.performance_id
        request_id = reservation.request_id

        doc = await self._repository.get_performance(performance_id)
        if doc is None:
            return ProcessingOutcome.failure(f"performance not found: {performance_id}")

        if request_id in (doc.get("applied_requests") or []):
            _log(
                "reservation_already_applied",
                performance_id=performance_id,
                request_id=request_id,
            )
            return ProcessingOutcome.success()

        remaining = int(doc.get("remaining_seats", 0))
        if remaining < reservation.quantity:
            return ProcessingOutcome.failure(
                f"insufficient seats: requested {reservation.quantity}, remaining {remaining}"
            )

        await self._repository.apply_reservation(
            performance_id,
            request_id,
            remaining - reservation.quantity,
        )
        _log(
            "reservation_applied",
            performance_id=performance_id,
            request_id=request_id,
            quantity=reservation.quantity,
            remaining_seats=remaining - reservation.quantity,
        )
        return ProcessingOutcome.success()

    def _deserialize_message(self, raw_body: str) -> SeatReservation:
        try:
            body = json.loads(raw_body)
        except ValueError as exc:
            raise InvalidReservationError(f"message body is not valid json: {exc}") from exc
        if not isinstance(body, dict):
            raise InvalidReservationError("message body must be a json object")

        performance_id = self._required_str(body, "performance_id")
        request_id = self._required_str(body, "request_id")

        quantity = body.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise InvalidReservationError("message field quantity must be an integer")
        return SeatReservation(performance_id=performance_id, quantity=quantity, request_id=request_id)

    @staticmethod
    def _required_str(body: dict[str, Any], field: str) -> str:
        value = body.get(field)
        if value is None:
            raise InvalidReservationError(f"message missing required field: {field}")
        if not isinstance(value, str):
            raise InvalidReservationError(f"message field {field} must be a string")
        value = value.strip()
        if not value:
            raise InvalidReservationError(f"message missing required field: {field}")
        return value
