import asyncio
import signal
from typing import Any

from loguru import logger

from seat_worker.app.composition import create_worker_dependencies
from seat_worker.app.config.settings import Settings
from seat_worker.app.core import SERVICE_NAME
from seat_worker.app.core.logging import configure_logging


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_worker(settings: Settings | None = None) -> None:
    settings = settings or Settings()
    deps = create_worker_dependencies(settings)
    shutdown = asyncio.Event()

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except NotImplementedError:
            pass

    try:
        await deps.connect()
        _log("worker_started", workers=settings.num_workers)
        await deps.supervisor.run(shutdown)
    finally:
        await deps.close()
        _log("worker_stopped")


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level, json_output=settings.log_json)
    try:
        asyncio.run(run_worker(settings))
    except KeyboardInterrupt:
        _log("worker_interrupted")
    except Exception as e:
        logger.exception("worker failed: {}", e)
        raise


if __name__ == "__main__":
    main()
