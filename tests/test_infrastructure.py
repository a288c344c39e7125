"""
Tests for configuration, logging, container wiring and the CLI.
"""

import asyncio

import pytest
from click.testing import CliRunner
from loguru import logger
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.condition_service import __version__, cli
from src.condition_service.application.service_client import ServiceClient
from src.condition_service.cli import main, run_service
from src.condition_service.domain.exceptions import ServiceException
from src.condition_service.infrastructure import message_bus
from src.condition_service.infrastructure.container import get_container, init_container
from src.condition_service.infrastructure.device_loader import DictDeviceLoader, JsonFileDeviceLoader
from src.condition_service.infrastructure.http_forwarder import HttpForwarder
from src.condition_service.infrastructure.logging import configure_logging, device_logging, loguru_level
from src.condition_service.infrastructure.message_bus import RedisMessageBus
from src.config import AppConfig, ServiceConfig
from tests.conftest import StubPubSub, StubRedis


class TestConfig:
    """Tests for settings."""

    def test_defaults(self):
        config = AppConfig()

        assert config.bus.url == "redis://localhost:6379/0"
        assert config.forwarding.timeout == 5.0
        assert config.logging.level == 4
        assert config.service.running_status is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("SERVICE_ID", "svc-42")
        monkeypatch.setenv("SERVICE_RUNNING_STATUS", "false")
        monkeypatch.setenv("HTTP_TIMEOUT", "2.5")

        config = AppConfig()

        assert config.service.id == "svc-42"
        assert config.service.running_status is False
        assert config.forwarding.timeout == 2.5

    def test_service_config_prefix(self, monkeypatch):
        monkeypatch.setenv("SERVICE_DEVICES_FILE", "/etc/devices.json")

        assert ServiceConfig().devices_file == "/etc/devices.json"


class TestLogging:
    """Tests for logging helpers."""

    def test_level_mapping(self):
        assert loguru_level(5) == "DEBUG"
        assert loguru_level(4) == "INFO"
        assert loguru_level(3) == "WARNING"
        assert loguru_level(2) == "ERROR"
        assert loguru_level(0) == "CRITICAL"
        assert loguru_level(9) == "DEBUG"
        assert loguru_level(-1) == "CRITICAL"

    def test_records_carry_device_id(self):
        records = []
        handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
        try:
            with device_logging("d1"):
                logger.info("linked")
                with logger.contextualize(rule="a > 1"):
                    logger.info("armed")
            logger.info("idle")
        finally:
            logger.remove(handler_id)

        assert records[0]["extra"]["device_id"] == "d1"
        assert records[1]["extra"]["device_id"] == "d1"
        assert records[1]["extra"]["rule"] == "a > 1"
        assert records[2]["extra"].get("device_id", "-") == "-"

    @pytest.mark.asyncio
    async def test_tasks_inherit_device_id(self):
        records = []
        handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")

        async def work():
            logger.info("in task")

        try:
            with device_logging("d2"):
                task = asyncio.create_task(work())
            await task
        finally:
            logger.remove(handler_id)

        assert records[-1]["extra"]["device_id"] == "d2"

    def test_configure_logging_with_file(self, tmp_path):
        log_file = tmp_path / "service.log"

        configure_logging(level=3, log_file=str(log_file))
        logger.warning("written")
        logger.remove()

        assert "written" in log_file.read_text()


class TestContainer:
    """Tests for dependency wiring."""

    def test_wires_service_client(self):
        config = AppConfig()
        config.service.id = "svc-test"
        container = init_container(config.model_dump())

        client = container.service_client()

        assert get_container() is container
        assert isinstance(client, ServiceClient)
        assert client.service_id == "svc-test"
        assert isinstance(client.bus, RedisMessageBus)
        assert isinstance(client.forwarder, HttpForwarder)
        assert client.forwarder.timeout == 5.0
        assert container.service_client() is client
        assert isinstance(container.device_loader(), DictDeviceLoader)

    def test_devices_file_selects_json_loader(self, tmp_path):
        config = AppConfig()
        config.service.devices_file = str(tmp_path / "devices.json")
        container = init_container(config.model_dump())

        assert isinstance(container.device_loader(), JsonFileDeviceLoader)


class TestCli:
    """Tests for the command line surface."""

    def test_help(self):
        result = CliRunner().invoke(main, ["--help"])

        assert result.exit_code == 0
        assert "--redis-url" in result.output
        assert "--devices-file" in result.output

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_rejects_out_of_range_log_level(self):
        result = CliRunner().invoke(main, ["--log-level", "9"])

        assert result.exit_code != 0

    def test_service_error_exits_with_failure(self, monkeypatch):
        async def failing_run(config):
            raise ServiceException("Lost connection to the message bus")

        monkeypatch.setattr(cli, "run_service", failing_run)

        result = CliRunner().invoke(main, [])

        assert result.exit_code == 1


class TestRunService:
    """Tests for the service lifecycle runner."""

    @pytest.mark.asyncio
    async def test_lost_bus_connection_ends_service(self, monkeypatch):
        pubsub = StubPubSub([RedisTimeoutError("read timed out")])
        stub = StubRedis(pubsub)
        monkeypatch.setattr(message_bus.redis, "from_url", lambda url, **options: stub)
        config = AppConfig()
        config.service.id = "svc"
        config.service.devices_file = None

        try:
            with pytest.raises(ServiceException, match="Lost connection"):
                await run_service(config)
        finally:
            logger.remove()

        assert stub.published[0] == ("openchirp/service/svc/status", b'{"message":"Starting"}')
        assert pubsub.closed
        assert stub.closed
