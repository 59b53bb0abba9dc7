"""RabbitMQ message source lifecycle states."""
from enum import Enum


class SourceState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    READY = "READY"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"
