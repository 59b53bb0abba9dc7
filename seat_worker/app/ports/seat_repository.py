"""Abstract interface for seat inventory persistence (port)."""
from __future__ import annotations

from typing import Any, Protocol


class SeatRepository(Protocol):
    """Port: per-performance seat counters. Implementations live in infrastructure."""

    async def ensure_indexes(self) -> None: ...

    async def get_performance(self, performance_id: str) -> dict[str, Any] | None: ...

    async def apply_reservation(
        self,
        performance_id: str,
        request_id: str,
        remaining_seats: int,
    ) -> None:
        """Store the new remaining seat count and record `request_id` as applied."""
        ...

    async def close(self) -> None:
        """Release resources (e.g. DB client). No-op allowed if nothing to close."""
        ...
