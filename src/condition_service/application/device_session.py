"""DeviceSession: per-device rule state and evaluation."""

import asyncio
from collections.abc import Mapping

from loguru import logger

from src.condition_service.domain.exceptions import (
    ConfigCompileError,
    EvaluationError,
    ForwardingError,
    PayloadParseError,
    ServiceException,
)
from src.condition_service.domain.models import (
    ERROR_TOPIC,
    EXPR_KEY,
    LINK_SUCCESS_MESSAGE,
    OUTPUT_TOPIC,
    RESERVED_TOPICS,
    VALUE_KEY,
    CompiledExpression,
    DeviceConfig,
    ResultKind,
    transducer_topic,
)
from src.condition_service.domain.protocols import DeviceControl, ExpressionEngine, Forwarder


def parse_payload(key: str, payload: bytes) -> float:
    """Parse a message payload as a 64-bit float, ignoring surrounding whitespace."""
    try:
        return float(payload.decode("utf-8").strip())
    except UnicodeDecodeError as e:
        raise PayloadParseError(key, payload, "payload is not valid UTF-8") from e
    except ValueError as e:
        raise PayloadParseError(key, payload, str(e)) from e


class DeviceSession:
    """
    Rule state of one linked device.

    Holds the compiled condition and value expressions, the output URI and the
    latest value of every variable the condition reads. Every inbound value
    re-evaluates the condition; when it is exactly boolean true the value
    expression result is published on `transducer/out` and, if a URI is set,
    POSTed there. Recoverable failures are published on `transducer/err`.

    All operations run under one lock, so events for the same device never
    interleave.
    """

    def __init__(self, control: DeviceControl, engine: ExpressionEngine, forwarder: Forwarder):
        """
        Initialize session.

        Args:
            control: Device-scoped bus access
            engine: Expression compiler/evaluator
            forwarder: HTTP forwarder for the optional output URI
        """
        self.control = control
        self.engine = engine
        self.forwarder = forwarder

        self._lock = asyncio.Lock()
        self._linked = False
        self._condition: CompiledExpression | None = None
        self._value: CompiledExpression | None = None
        self._output_uri = ""
        self._latest_values: dict[str, float] = {}
        self._subscribed: frozenset[str] = frozenset()

    @property
    def device_id(self) -> str:
        return self.control.device_id

    @property
    def linked(self) -> bool:
        return self._linked

    @property
    def condition(self) -> CompiledExpression | None:
        return self._condition

    @property
    def value_expression(self) -> CompiledExpression | None:
        return self._value

    @property
    def output_uri(self) -> str:
        return self._output_uri

    @property
    def latest_values(self) -> dict[str, float]:
        """Snapshot of the latest value per variable."""
        return dict(self._latest_values)

    @property
    def subscribed_variables(self) -> frozenset[str]:
        return self._subscribed

    async def link(self, config: Mapping[str, str]) -> tuple[str, bool]:
        """
        Compile the rule and subscribe its condition variables.

        Args:
            config: Device configuration with "expr", "value" and optional "uri"

        Returns:
            (message, ok): "Success" and True, or the compile error and False
        """
        logger.debug(f"Linking with config: {dict(config)}")
        async with self._lock:
            return await self._apply(DeviceConfig.from_mapping(config))

    async def config_change(self, changes: Mapping[str, str], original: Mapping[str, str]) -> tuple[str, bool]:
        """
        Apply a configuration change as a full relink.

        On failure the previous rule, values and subscriptions are left untouched.

        Args:
            changes: Changed keys with their new values
            original: Configuration before the change

        Returns:
            (message, changed)
        """
        logger.debug(f"Processing config change: {dict(changes)}")
        async with self._lock:
            return await self._apply(DeviceConfig.from_mapping({**original, **changes}))

    async def unlink(self) -> None:
        """Release the session. Later messages are dropped."""
        async with self._lock:
            self._linked = False
            self._condition = None
            self._value = None
            self._output_uri = ""
            self._latest_values = {}
            self._subscribed = frozenset()
            await self.control.unsubscribe_all()
        logger.debug("Unlinked")

    async def message(self, key: str, payload: bytes) -> None:
        """
        Record a new variable value and re-evaluate the rule.

        Args:
            key: Variable name the value was subscribed under
            payload: Raw message payload, expected to hold a number
        """
        async with self._lock:
            if not self._linked:
                logger.debug(f"Dropping '{key}' message: device is not linked")
                return
            if key not in self._subscribed:
                logger.debug(f"Dropping '{key}' message: not a condition variable")
                return

            try:
                self._latest_values[key] = parse_payload(key, payload)
                output = self._evaluate()
            except (PayloadParseError, EvaluationError) as e:
                await self._report(e)
                return

            if output is None:
                return

            await self.control.publish(OUTPUT_TOPIC, output)
            logger.debug(f"Published {output} to {OUTPUT_TOPIC}")

            if self._output_uri:
                try:
                    await self.forwarder.post(self._output_uri, output)
                except ForwardingError as e:
                    await self._report(e)

    async def _apply(self, config: DeviceConfig) -> tuple[str, bool]:
        """Compile both expressions, then swap them in together."""
        try:
            condition = self._compile(EXPR_KEY, config.condition)
            value = self._compile(VALUE_KEY, config.value)
        except ConfigCompileError as e:
            logger.warning(f"Rejected configuration: {e.message}")
            return e.message, False

        variables = self.engine.free_variables(condition)

        reserved = sorted(name for name in variables if transducer_topic(name) in RESERVED_TOPICS)
        if reserved:
            error = ConfigCompileError(condition.text, f"variable '{reserved[0]}' is reserved", field=EXPR_KEY)
            logger.warning(f"Rejected configuration: {error.message}")
            return error.message, False

        await self._resubscribe(variables)

        self._condition = condition
        self._value = value
        self._output_uri = config.uri
        self._latest_values = {}
        self._subscribed = variables
        self._linked = True

        logger.info(
            f"Armed rule '{condition.text}' -> '{value.text}' "
            f"(variables={sorted(variables)}, uri={config.uri or '-'})"
        )
        return LINK_SUCCESS_MESSAGE, True

    async def _resubscribe(self, variables: frozenset[str]) -> None:
        """
        Move the subscriptions from the current variables to the given ones.

        If the bus fails partway, the changes made so far are undone before the
        error propagates, so the previous subscriptions stay in place.
        """
        removed: list[str] = []
        added: list[str] = []
        try:
            for name in sorted(self._subscribed - variables):
                await self.control.unsubscribe(transducer_topic(name))
                removed.append(name)
            for name in sorted(variables - self._subscribed):
                await self.control.subscribe(transducer_topic(name), name)
                added.append(name)
        except Exception:
            logger.error("Subscription change failed, restoring previous subscriptions")
            for name in added:
                await self.control.unsubscribe(transducer_topic(name))
            for name in removed:
                await self.control.subscribe(transducer_topic(name), name)
            raise

    def _compile(self, key: str, text: str) -> CompiledExpression:
        try:
            return self.engine.compile(text)
        except ConfigCompileError as e:
            raise ConfigCompileError(e.expression, e.reason, field=key) from e

    def _evaluate(self) -> str | None:
        """
        Evaluate the rule against the current values.

        Returns:
            The formatted value when the condition is exactly true, else None

        Raises:
            EvaluationError: If either expression fails to evaluate
        """
        result = self.engine.evaluate(self._condition, self._latest_values)
        if result.kind is ResultKind.ERROR:
            raise EvaluationError("condition", result.error)
        if not result.is_true:
            return None

        result = self.engine.evaluate(self._value, self._latest_values)
        if result.kind is ResultKind.ERROR:
            raise EvaluationError("value", result.error)

        return result.format()

    async def _report(self, error: ServiceException) -> None:
        logger.debug(f"Reporting error: {error.message}")
        await self.control.publish(ERROR_TOPIC, error.message)
