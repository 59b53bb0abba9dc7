"""Worker-level constants shared across modules."""
from __future__ import annotations


class UNIT:
    RECEIVER = "receiver"
    WORKER_PREFIX = "worker"


class MESSAGE_FATE:
    DELETED = "DELETED"
    VISIBILITY_EXTENDED = "VISIBILITY_EXTENDED"
    ACK_FAILED = "ACK_FAILED"
    ABANDONED = "ABANDONED"


def worker_unit_name(index: int) -> str:
    return f"{UNIT.WORKER_PREFIX}-{index}"
