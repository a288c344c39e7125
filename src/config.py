"""Configuration for the application."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceConfig(BaseSettings):
    """Configuration for the service instance."""

    model_config = SettingsConfigDict(env_prefix="SERVICE_", env_file=".env", extra="ignore")

    id: str = Field(default="condition-service", min_length=1, description="Service identifier")
    running_status: bool = Field(default=True, description="Publish a Running status after every device event")
    devices_file: str | None = Field(default=None, description="JSON file with the devices to link at startup")
    mailbox_size: int = Field(default=1024, ge=0, description="Per-device message queue bound (0 = unbounded)")
    topic_prefix: str = Field(default="openchirp", description="Root of all bus topics")


class MessageBusConfig(BaseSettings):
    """Configuration for the message bus."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", env_file=".env", extra="ignore")

    url: str = Field(default="redis://localhost:6379/0", description="Redis server URL")


class ForwardingConfig(BaseSettings):
    """Configuration for HTTP forwarding."""

    model_config = SettingsConfigDict(env_prefix="HTTP_", env_file=".env", extra="ignore")

    timeout: float = Field(default=5.0, gt=0, description="Seconds allowed for each POST")


class LoggingConfig(BaseSettings):
    """Configuration for logging."""

    model_config = SettingsConfigDict(env_prefix="LOG_", env_file=".env", extra="ignore")

    level: int = Field(default=4, ge=0, le=5, description="debug=5, info=4, warning=3, error=2, fatal=1, panic=0")
    file: str | None = Field(default=None, description="Optional rotating log file")


class AppConfig(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    service: ServiceConfig = Field(default_factory=ServiceConfig)
    bus: MessageBusConfig = Field(default_factory=MessageBusConfig)
    forwarding: ForwardingConfig = Field(default_factory=ForwardingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
