"""Message source factory: selects implementation from config. Only place that imports concrete sources."""
from __future__ import annotations

from seat_worker.app.config.settings import Settings
from seat_worker.app.infrastructure.messaging.rabbitmq.rabbitmq_message_source import RabbitMQMessageSource
from seat_worker.app.infrastructure.messaging.sqs.sqs_message_source import SqsMessageSource, create_sqs_client
from seat_worker.app.ports.message_source import MessageSource


def create_message_source(settings: Settings) -> MessageSource:
    backend = settings.queue_backend

    if backend == "sqs":
        return SqsMessageSource(create_sqs_client(settings), settings.queue_url)
    if backend == "rabbitmq":
        return RabbitMQMessageSource(settings)

    raise ValueError(f"Unsupported queue backend: {backend}")
