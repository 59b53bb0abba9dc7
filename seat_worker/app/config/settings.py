from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# SQS rejects receive batches outside 1..10 and long-poll waits above 20s.
SQS_MAX_BATCH_SIZE = 10
SQS_MAX_WAIT_SECONDS = 20


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    queue_backend: str = Field("sqs", validation_alias="QUEUE_BACKEND")
    repository_backend: str = Field("mongo", validation_alias="REPOSITORY_BACKEND")

    # SQS
    queue_url: str = Field("", validation_alias="QUEUE_URL")
    aws_region: str = Field("ap-northeast-2", validation_alias="AWS_REGION")
    aws_endpoint_url: str = Field("", validation_alias="AWS_ENDPOINT_URL")

    # RabbitMQ
    broker_host: str = Field("localhost", validation_alias="BROKER_HOST")
    broker_port: int = Field(5672, validation_alias="BROKER_PORT")
    broker_user: str = Field("guest", validation_alias="BROKER_USER")
    broker_password: str = Field("guest", validation_alias="BROKER_PASSWORD")
    queue_name: str = Field("seat_reservations", validation_alias="QUEUE_NAME")
    broker_poll_interval_seconds: float = Field(0.5, validation_alias="BROKER_POLL_INTERVAL_SECONDS")

    # Consumption pipeline
    num_workers: int = Field(3, validation_alias="NUM_WORKERS")
    poll_wait_seconds: int = Field(20, validation_alias="POLL_WAIT_SECONDS")
    poll_batch_size: int = Field(10, validation_alias="POLL_BATCH_SIZE")
    channel_capacity: int = Field(10, validation_alias="CHANNEL_CAPACITY")
    failure_visibility_timeout_seconds: int = Field(10, validation_alias="FAILURE_VISIBILITY_TIMEOUT_SECONDS")
    poll_error_delay_seconds: float = Field(1.0, validation_alias="POLL_ERROR_DELAY_SECONDS")
    # Total acknowledgment attempts per message; 1 means no retry.
    ack_max_attempts: int = Field(1, validation_alias="ACK_MAX_ATTEMPTS")
    shutdown_grace_seconds: float = Field(30.0, validation_alias="SHUTDOWN_GRACE_SECONDS")

    # Mongo
    database_host: str = Field("localhost", validation_alias="DATABASE_HOST")
    database_port: int = Field(27017, validation_alias="DATABASE_PORT")
    database_user: str = Field("", validation_alias="DATABASE_USER")
    database_password: str = Field("", validation_alias="DATABASE_PASSWORD")
    database_name: str = Field("ticketing", validation_alias="DATABASE_NAME")
    database_collection: str = Field("performances", validation_alias="DATABASE_COLLECTION")
    database_connection_timeout_ms: int = Field(5000, validation_alias="DATABASE_CONNECTION_TIMEOUT_MS")
    # Most recent request ids kept per performance for redelivery detection.
    applied_requests_window: int = Field(1000, validation_alias="APPLIED_REQUESTS_WINDOW")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(False, validation_alias="LOG_JSON")

    @field_validator(
        "num_workers",
        "poll_batch_size",
        "channel_capacity",
        "ack_max_attempts",
        "max_connection_attempts",
        "applied_requests_window",
    )
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("poll_wait_seconds", "failure_visibility_timeout_seconds")
    @classmethod
    def _not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must be >= 0")
        return value

    @field_validator("queue_backend", "repository_backend")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        return value.strip().lower()

    @model_validator(mode="after")
    def _check_sqs_limits(self) -> "Settings":
        if self.queue_backend != "sqs":
            return self
        if not 1 <= self.poll_batch_size <= SQS_MAX_BATCH_SIZE:
            raise ValueError(f"POLL_BATCH_SIZE must be between 1 and {SQS_MAX_BATCH_SIZE} for sqs")
        if self.poll_wait_seconds > SQS_MAX_WAIT_SECONDS:
            raise ValueError(f"POLL_WAIT_SECONDS must be <= {SQS_MAX_WAIT_SECONDS} for sqs")
        return self
