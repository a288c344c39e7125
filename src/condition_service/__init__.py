"""Condition service package."""

__version__ = "1.0.0"

from src.condition_service.application import DeviceSession, ServiceClient  # noqa: E402
from src.condition_service.domain import DeviceConfig, EvaluationResult, ResultKind  # noqa: E402
from src.condition_service.infrastructure import (  # noqa: E402
    HttpForwarder,
    InMemoryMessageBus,
    RedisMessageBus,
    SimpleEvalEngine,
)

__all__ = [
    "DeviceSession",
    "ServiceClient",
    "DeviceConfig",
    "EvaluationResult",
    "ResultKind",
    "HttpForwarder",
    "InMemoryMessageBus",
    "RedisMessageBus",
    "SimpleEvalEngine",
]
