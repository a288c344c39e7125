"""
Command line entry point for the condition service.

Starts the service client, publishes the service status sequence and runs
until SIGINT/SIGTERM.
"""

import asyncio
import signal
import sys

import click
from loguru import logger

from src.condition_service import __version__
from src.condition_service.domain.exceptions import ServiceException
from src.condition_service.domain.models import ServiceStatus
from src.condition_service.infrastructure.container import init_container
from src.condition_service.infrastructure.logging import configure_logging
from src.config import AppConfig


async def run_service(config: AppConfig) -> None:
    """
    Run the service until a termination signal arrives.

    Status sequence: Starting, Started, (Running per device event), Shutting down.

    Raises:
        ServiceException: If the message bus connection is lost
    """
    configure_logging(config.logging.level, config.logging.file)
    logger.info(f"Starting condition service {__version__}")

    container = init_container(config.model_dump())
    bus = container.message_bus()
    forwarder = container.forwarder()
    client = container.service_client()

    stop = asyncio.Event()
    lost: list[Exception] = []

    def connection_lost(error: Exception) -> None:
        lost.append(error)
        stop.set()

    def received_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}")
        stop.set()

    bus.on_connection_lost = connection_lost
    await bus.connect()

    loop = asyncio.get_running_loop()
    try:
        await client.set_status(ServiceStatus.STARTING)

        devices = await container.device_loader().load_devices()
        await client.start(devices)

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, received_signal, sig)

        await client.set_status(ServiceStatus.STARTED)

        await stop.wait()

        if lost:
            raise ServiceException("Lost connection to the message bus", {"error": str(lost[0])}) from lost[0]

        logger.warning("Shutting down")
        await client.stop()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await forwarder.aclose()
        await bus.close()


@click.command()
@click.version_option(__version__)
@click.option("--redis-url", default=None, help="Redis server URL (overrides REDIS_URL)")
@click.option("--service-id", default=None, help="Service identifier (overrides SERVICE_ID)")
@click.option(
    "--devices-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON file with the devices to link at startup (overrides SERVICE_DEVICES_FILE)",
)
@click.option(
    "--log-level",
    type=click.IntRange(0, 5),
    default=None,
    help="debug=5, info=4, warning=3, error=2, fatal=1, panic=0 (overrides LOG_LEVEL)",
)
@click.option("--http-timeout", type=click.FloatRange(min=0, min_open=True), default=None, help="Seconds per POST")
def main(
    redis_url: str | None,
    service_id: str | None,
    devices_file: str | None,
    log_level: int | None,
    http_timeout: float | None,
):
    """Publish (and optionally POST) a computed value whenever a device's condition holds."""
    config = AppConfig()

    if redis_url:
        config.bus.url = redis_url
    if service_id:
        config.service.id = service_id
    if devices_file:
        config.service.devices_file = devices_file
    if log_level is not None:
        config.logging.level = log_level
    if http_timeout is not None:
        config.forwarding.timeout = http_timeout

    try:
        asyncio.run(run_service(config))
    except ServiceException as e:
        logger.error(f"{e.message}: {e.details}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Service error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
