"""Dependency injection container for the condition service."""

from dependency_injector import containers, providers

from src.condition_service.application.service_client import ServiceClient
from src.condition_service.infrastructure.device_loader import DictDeviceLoader, JsonFileDeviceLoader
from src.condition_service.infrastructure.expression_engine import SimpleEvalEngine
from src.condition_service.infrastructure.http_forwarder import HttpForwarder
from src.condition_service.infrastructure.message_bus import RedisMessageBus


def _device_loader(devices_file: str | None):
    """Pick the device loader for the configured devices file."""
    if devices_file:
        return JsonFileDeviceLoader(devices_file)
    return DictDeviceLoader()


class ServiceContainer(containers.DeclarativeContainer):
    """Dependency injection container for the condition service."""

    config = providers.Configuration()

    # Transport
    message_bus = providers.Singleton(
        RedisMessageBus,
        url=config.bus.url,
    )

    # Rule evaluation
    expression_engine = providers.Singleton(SimpleEvalEngine)

    forwarder = providers.Singleton(
        HttpForwarder,
        timeout=config.forwarding.timeout,
    )

    device_loader = providers.Singleton(
        _device_loader,
        devices_file=config.service.devices_file,
    )

    service_client = providers.Singleton(
        ServiceClient,
        bus=message_bus,
        engine=expression_engine,
        forwarder=forwarder,
        service_id=config.service.id,
        running_status=config.service.running_status,
        mailbox_size=config.service.mailbox_size,
        topic_prefix=config.service.topic_prefix,
    )


# Global container instance
_container: ServiceContainer | None = None


def init_container(config: dict) -> ServiceContainer:
    """Initialize the global container."""
    global _container
    _container = ServiceContainer()
    _container.config.from_dict(config)
    return _container


def get_container() -> ServiceContainer:
    """Get the global container instance."""
    if _container is None:
        raise RuntimeError("Container not initialized. Call init_container() first.")
    return _container
