"""Device loaders for the initial device list."""

from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import TypeAdapter

from src.condition_service.domain.protocols import DeviceLoader
from src.condition_service.domain.schemas import DeviceRecord

_device_list = TypeAdapter(list[DeviceRecord])


class JsonFileDeviceLoader(DeviceLoader):
    """Load devices from a JSON array of {"id": ..., "config": {...}} objects."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load_devices(self) -> list[DeviceRecord]:
        """
        Read and validate the devices file.

        Returns:
            Device records in file order

        Raises:
            FileNotFoundError: If the file does not exist
            pydantic.ValidationError: If the content is not a valid device list
        """
        devices = _device_list.validate_json(self.path.read_bytes())

        ids = [device.id for device in devices]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate device ids in {self.path}")

        logger.info(f"Loaded {len(devices)} devices from {self.path}")
        return devices


class DictDeviceLoader(DeviceLoader):
    """Simple loader that returns pre-provided devices."""

    def __init__(self, devices: list[dict[str, Any]] | None = None):
        """Initialize with device list."""
        self.devices = _device_list.validate_python(devices or [])

    async def load_devices(self) -> list[DeviceRecord]:
        """Return the provided devices."""
        logger.info(f"Loaded {len(self.devices)} devices from dict")
        return list(self.devices)
