"""Infrastructure layer for the condition service."""

from src.condition_service.infrastructure.device_control import BusDeviceControl
from src.condition_service.infrastructure.device_loader import DictDeviceLoader, JsonFileDeviceLoader
from src.condition_service.infrastructure.expression_engine import SimpleEvalEngine, VariableExtractor
from src.condition_service.infrastructure.http_forwarder import HttpForwarder
from src.condition_service.infrastructure.logging import configure_logging, device_logging
from src.condition_service.infrastructure.message_bus import InMemoryMessageBus, RedisMessageBus

__all__ = [
    "BusDeviceControl",
    "DictDeviceLoader",
    "JsonFileDeviceLoader",
    "SimpleEvalEngine",
    "VariableExtractor",
    "HttpForwarder",
    "device_logging",
    "configure_logging",
    "InMemoryMessageBus",
    "RedisMessageBus",
]
