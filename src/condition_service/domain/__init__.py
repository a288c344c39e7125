"""Domain layer for the condition service."""

from src.condition_service.domain.exceptions import (
    ConfigCompileError,
    EvaluationError,
    ForwardingError,
    PayloadParseError,
    ServiceException,
)
from src.condition_service.domain.models import (
    CompiledExpression,
    DeviceConfig,
    EvaluationResult,
    ResultKind,
    ServiceStatus,
)
from src.condition_service.domain.protocols import (
    DeviceControl,
    DeviceLoader,
    ExpressionEngine,
    Forwarder,
    MessageBus,
)
from src.condition_service.domain.schemas import DeviceRecord, ThingEvent

__all__ = [
    "CompiledExpression",
    "DeviceConfig",
    "EvaluationResult",
    "ResultKind",
    "ServiceStatus",
    "DeviceRecord",
    "ThingEvent",
    "ServiceException",
    "ConfigCompileError",
    "PayloadParseError",
    "EvaluationError",
    "ForwardingError",
    "DeviceControl",
    "DeviceLoader",
    "ExpressionEngine",
    "Forwarder",
    "MessageBus",
]
