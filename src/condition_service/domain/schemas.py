"""Pydantic schemas for framework events, device records and status reports."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class ConfigItem(BaseModel):
    """A single key/value configuration entry as sent by the framework."""

    key: str
    value: str = ""


def _config_to_mapping(value: Any) -> Any:
    # The framework sends [{"key": ..., "value": ...}]; device files use a plain object
    if isinstance(value, list):
        items = [ConfigItem.model_validate(item) for item in value]
        return {item.key: item.value for item in items}
    return value


class DeviceRecord(BaseModel):
    """A device known to the service with its rule configuration."""

    id: str = Field(..., min_length=1, description="Device identifier")
    config: dict[str, str] = Field(default_factory=dict, description="Rule configuration (expr, value, uri)")

    @field_validator("config", mode="before")
    @classmethod
    def normalize_config(cls, value: Any) -> Any:
        """Accept both the framework's list form and a plain mapping."""
        return _config_to_mapping(value)


class ThingEvent(BaseModel):
    """Device lifecycle event published by the framework on the service events topic."""

    action: Literal["new", "update", "delete"]
    thing: DeviceRecord


class StatusMessage(BaseModel):
    """Status payload body."""

    message: str


class DeviceStatus(BaseModel):
    id: str
    status: StatusMessage


class DeviceStatusReport(BaseModel):
    """Per-device status, e.g. the result of linking a device."""

    thing: DeviceStatus

    @classmethod
    def create(cls, device_id: str, message: str) -> "DeviceStatusReport":
        return cls(thing=DeviceStatus(id=device_id, status=StatusMessage(message=message)))
