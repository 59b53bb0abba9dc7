"""
Integration tests against live services.

Needs an SQS-compatible endpoint (e.g. LocalStack or ElasticMQ) and MongoDB:
  AWS_ENDPOINT_URL=http://localhost:4566 DATABASE_HOST=localhost pytest -m integration
"""
import asyncio
import json
import os
import uuid

import boto3
import pytest

from seat_worker.app.composition import create_worker_dependencies
from seat_worker.app.config.settings import Settings
from seat_worker.app.infrastructure.persistence.mongo.connection import create_mongo_client
from seat_worker.app.infrastructure.persistence.mongo.mongo_repository import MongoSeatRepository


def _sqs_client():
    return boto3.client(
        "sqs",
        endpoint_url=os.getenv("AWS_ENDPOINT_URL", "http://localhost:4566"),
        region_name=os.getenv("AWS_REGION", "ap-northeast-2"),
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID", "test"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY", "test"),
    )


def _build_settings(queue_url: str, collection: str) -> Settings:
    return Settings(
        queue_backend="sqs",
        queue_url=queue_url,
        aws_endpoint_url=os.getenv("AWS_ENDPOINT_URL", "http://localhost:4566"),
        aws_region=os.getenv("AWS_REGION", "ap-northeast-2"),
        database_host=os.getenv("DATABASE_HOST", "localhost"),
        database_port=int(os.getenv("DATABASE_PORT", "27017")),
        database_name=os.getenv("DATABASE_NAME", "ticketing_test"),
        database_collection=collection,
        num_workers=3,
        poll_wait_seconds=1,
        failure_visibility_timeout_seconds=1,
        max_connection_attempts=3,
        initial_backoff_seconds=0.5,
    )


async def _remaining_seats(settings: Settings, performance_id: str) -> int:
    client = await create_mongo_client(settings)
    repo = MongoSeatRepository(client[settings.database_name][settings.database_collection], client=client)
    try:
        doc = await repo.get_performance(performance_id)
        return int(doc["remaining_seats"])
    finally:
        await repo.close()


@pytest.mark.integration
def test_worker_applies_reservations_and_drains_queue():
    sqs = _sqs_client()
    queue_url = sqs.create_queue(QueueName=f"seat-worker-it-{uuid.uuid4().hex[:8]}")["QueueUrl"]
    settings = _build_settings(queue_url, f"performances_{uuid.uuid4().hex[:8]}")
    performance_id = f"perf-{uuid.uuid4().hex[:8]}"

    async def _run() -> None:
        seed_client = await create_mongo_client(settings)
        seed_repo = MongoSeatRepository(
            seed_client[settings.database_name][settings.database_collection],
            client=seed_client,
        )
        await seed_repo.ensure_indexes()
        await seed_repo.create_performance(performance_id, total_seats=20)
        await seed_repo.close()

        for i in range(12):
            body = {"performance_id": performance_id, "quantity": 1, "request_id": f"req-{i}"}
            sqs.send_message(QueueUrl=queue_url, MessageBody=json.dumps(body))

        deps = create_worker_dependencies(settings)
        await deps.connect()
        shutdown = asyncio.Event()
        task = asyncio.create_task(deps.supervisor.run(shutdown))
        try:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + 60
            while await _remaining_seats(settings, performance_id) != 8:
                assert loop.time() < deadline, "reservations were not applied in time"
                await asyncio.sleep(0.5)
        finally:
            shutdown.set()
            await asyncio.wait_for(task, timeout=30)
            await deps.close()

    try:
        asyncio.run(_run())
        attrs = sqs.get_queue_attributes(
            QueueUrl=queue_url,
            AttributeNames=["ApproximateNumberOfMessages", "ApproximateNumberOfMessagesNotVisible"],
        )["Attributes"]
        assert attrs["ApproximateNumberOfMessages"] == "0"
    finally:
        sqs.delete_queue(QueueUrl=queue_url)
