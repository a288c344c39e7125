"""Application layer for the condition service."""

from src.condition_service.application.device_session import DeviceSession, parse_payload
from src.condition_service.application.service_client import LinkedDevice, ServiceClient
from src.condition_service.application.session_worker import SessionWorker

__all__ = ["DeviceSession", "parse_payload", "ServiceClient", "LinkedDevice", "SessionWorker"]
