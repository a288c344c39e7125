"""Custom exceptions for the condition service."""


class ServiceException(Exception):
    """Base exception for all condition service errors."""

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize service exception.

        Args:
            message: Human-readable error message
            details: Optional dict with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigCompileError(ServiceException):
    """Raised when a condition or value expression cannot be compiled."""

    def __init__(self, expression: str, reason: str, field: str | None = None):
        subject = f"'{field}' expression" if field else "expression"
        super().__init__(
            message=f"Failed to compile {subject} '{expression}': {reason}",
            details={"field": field, "expression": expression, "reason": reason},
        )
        self.expression = expression
        self.reason = reason
        self.field = field


class PayloadParseError(ServiceException):
    """Raised when an inbound payload is not a valid number."""

    def __init__(self, key: str, payload: bytes, reason: str):
        super().__init__(
            message=f"Failed to parse value for '{key}': {reason}",
            details={"key": key, "payload": payload[:64].decode("utf-8", errors="replace")},
        )
        self.key = key


class EvaluationError(ServiceException):
    """Raised when the condition or value expression fails to evaluate."""

    def __init__(self, stage: str, reason: str):
        super().__init__(
            message=f"Failed to evaluate {stage} expression: {reason}",
            details={"stage": stage, "reason": reason},
        )
        self.stage = stage


class ForwardingError(ServiceException):
    """Raised when the computed value cannot be POSTed to the output URI."""

    def __init__(self, uri: str, reason: str, original_error: Exception | None = None):
        details = {"uri": uri}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__
        super().__init__(message=f"Failed to forward value to '{uri}': {reason}", details=details)
        self.uri = uri
