"""Protocols (interfaces) for condition service components."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Protocol

from src.condition_service.domain.models import CompiledExpression, EvaluationResult
from src.condition_service.domain.schemas import DeviceRecord

MessageHandler = Callable[[str, bytes], Awaitable[None]]


class ExpressionEngine(Protocol):
    """Interface for compiling and evaluating rule expressions."""

    def compile(self, text: str) -> CompiledExpression:
        """
        Parse and validate an expression.

        Args:
            text: Expression source (e.g., "a > 10 and b < 3")

        Returns:
            Compiled expression

        Raises:
            ConfigCompileError: If the expression is empty, malformed or unsupported
        """
        ...

    def evaluate(self, compiled: CompiledExpression, values: Mapping[str, float]) -> EvaluationResult:
        """
        Evaluate a compiled expression against variable values.

        Never raises; failures (e.g., a variable without a value) come back as
        an ERROR result.
        """
        ...

    def free_variables(self, compiled: CompiledExpression) -> frozenset[str]:
        """Names of the variables an expression reads."""
        ...


class MessageBus(Protocol):
    """Interface for the publish/subscribe transport."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def publish(self, topic: str, payload: bytes) -> None:
        """Publish a payload on a topic."""
        ...

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        """Deliver every message on a topic to handler(topic, payload)."""
        ...

    async def unsubscribe(self, topic: str) -> None: ...


class DeviceControl(Protocol):
    """Interface a device session uses to talk to the bus, scoped to one device."""

    @property
    def device_id(self) -> str: ...

    async def subscribe(self, topic: str, key: str) -> None:
        """Subscribe a device-relative topic; messages are delivered under key."""
        ...

    async def unsubscribe(self, topic: str) -> None: ...

    async def unsubscribe_all(self) -> None: ...

    async def publish(self, topic: str, payload: str | bytes) -> None:
        """Publish on a device-relative topic."""
        ...


class Forwarder(Protocol):
    """Interface for forwarding computed values to an external endpoint."""

    async def post(self, uri: str, body: str) -> None:
        """
        POST body to uri.

        Raises:
            ForwardingError: On malformed URI or transport failure
        """
        ...


class DeviceLoader(Protocol):
    """Interface for loading the initial device list."""

    async def load_devices(self) -> list[DeviceRecord]:
        """Return the devices to link at startup."""
        ...
