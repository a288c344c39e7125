"""Domain models for the condition service."""

import ast
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Configuration keys recognized at link and config change
EXPR_KEY = "expr"
VALUE_KEY = "value"
URI_KEY = "uri"

# Device-relative channels
OUTPUT_TOPIC = "transducer/out"
ERROR_TOPIC = "transducer/err"

# Channels the session publishes on; never subscribed as variables
RESERVED_TOPICS = frozenset({OUTPUT_TOPIC, ERROR_TOPIC})

LINK_SUCCESS_MESSAGE = "Success"


def transducer_topic(variable: str) -> str:
    """Device-relative topic carrying values for a variable."""
    return f"transducer/{variable}"


class ServiceStatus(str, Enum):
    """Service status messages, in the order they are published."""

    STARTING = "Starting"
    STARTED = "Started"
    RUNNING = "Running"
    SHUTTING_DOWN = "Shutting down"


@dataclass(frozen=True)
class DeviceConfig:
    """Rule configuration of a single device."""

    condition: str
    value: str
    uri: str = ""

    @classmethod
    def from_mapping(cls, config: Mapping[str, str]) -> "DeviceConfig":
        """Build from the framework's key/value configuration. Missing keys read as empty."""
        return cls(
            condition=config.get(EXPR_KEY, "") or "",
            value=config.get(VALUE_KEY, "") or "",
            uri=(config.get(URI_KEY, "") or "").strip(),
        )


@dataclass(frozen=True)
class CompiledExpression:
    """An expression parsed and validated by an ExpressionEngine."""

    text: str
    tree: ast.expr = field(repr=False, compare=False)
    variables: frozenset[str] = frozenset()


class ResultKind(str, Enum):
    """Closed set of evaluation outcomes."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    TEXT = "text"
    ERROR = "error"


@dataclass(frozen=True)
class EvaluationResult:
    """Tagged result of evaluating an expression."""

    kind: ResultKind
    value: bool | int | float | str | None = None
    error: str | None = None

    @classmethod
    def of(cls, value: Any) -> "EvaluationResult":
        """Tag a raw evaluator value. bool is checked before int since it subclasses it."""
        if isinstance(value, bool):
            return cls(ResultKind.BOOLEAN, value)
        if isinstance(value, (int, float)):
            return cls(ResultKind.NUMBER, value)
        if isinstance(value, str):
            return cls(ResultKind.TEXT, value)
        return cls(ResultKind.TEXT, str(value))

    @classmethod
    def failure(cls, error: str) -> "EvaluationResult":
        return cls(ResultKind.ERROR, error=error)

    @property
    def is_true(self) -> bool:
        """Only a boolean True counts as a met condition."""
        return self.kind is ResultKind.BOOLEAN and self.value is True

    def format(self) -> str:
        """String form used for publishing and forwarding."""
        if self.kind is ResultKind.ERROR:
            raise ValueError(f"Cannot format a failed evaluation: {self.error}")
        if self.kind is ResultKind.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind is ResultKind.NUMBER:
            return format_number(self.value)
        return str(self.value)


def format_number(value: int | float) -> str:
    """
    Format a number the way it is published.

    Integral floats drop the fractional part (30.0 -> "30"); everything else
    uses Python's shortest round-trip representation.
    """
    if isinstance(value, int):
        return str(value)
    if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)
