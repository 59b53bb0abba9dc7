"""Amazon SQS implementation of MessageSource (boto3, calls run off the event loop)."""
from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from loguru import logger

from seat_worker.app.config.settings import Settings
from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.domain.models import QueueMessage


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def create_sqs_client(settings: Settings) -> BaseClient:
    """Build the boto3 client. Read timeout must outlast the long-poll wait."""
    config = Config(
        read_timeout=settings.poll_wait_seconds + 10,
        retries={"max_attempts": 3, "mode": "standard"},
        max_pool_connections=max(10, settings.num_workers + 1),
    )
    kwargs: dict[str, Any] = {"region_name": settings.aws_region, "config": config}
    if settings.aws_endpoint_url:
        kwargs["endpoint_url"] = settings.aws_endpoint_url
    return boto3.client("sqs", **kwargs)


class SqsMessageSource:
    """MessageSource backed by one SQS queue url.

    boto3 is synchronous; each call runs in a worker thread via
    asyncio.to_thread so concurrent workers overlap their network latency.
    A cancelled long-poll is abandoned and finishes in its thread.
    """

    def __init__(self, client: BaseClient, queue_url: str) -> None:
        if not queue_url:
            raise ValueError("sqs queue url is required")
        self._client = client
        self._queue_url = queue_url

    async def connect(self) -> None:
        await asyncio.to_thread(
            self._client.get_queue_attributes,
            QueueUrl=self._queue_url,
            AttributeNames=["VisibilityTimeout"],
        )
        _log("sqs_connected", queue_url=self._queue_url)

    async def receive(self, max_messages: int, wait_seconds: int) -> list[QueueMessage]:
        response = await asyncio.to_thread(
            self._client.receive_message,
            QueueUrl=self._queue_url,
            MaxNumberOfMessages=max_messages,
            WaitTimeSeconds=wait_seconds,
            AttributeNames=["ApproximateReceiveCount"],
        )
        return [self._to_queue_message(raw) for raw in response.get("Messages", [])]

    async def delete(self, message: QueueMessage) -> None:
        await asyncio.to_thread(
            self._client.delete_message,
            QueueUrl=self._queue_url,
            ReceiptHandle=message.receipt_handle,
        )

    async def extend_visibility(self, message: QueueMessage, seconds: int) -> None:
        await asyncio.to_thread(
            self._client.change_message_visibility,
            QueueUrl=self._queue_url,
            ReceiptHandle=message.receipt_handle,
            VisibilityTimeout=seconds,
        )

    async def close(self) -> None:
        self._client.close()

    @staticmethod
    def _to_queue_message(raw: dict[str, Any]) -> QueueMessage:
        attributes = raw.get("Attributes") or {}
        return QueueMessage(
            message_id=raw.get("MessageId", ""),
            receipt_handle=raw["ReceiptHandle"],
            body=raw.get("Body", ""),
            receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
        )
