"""DeviceControl over a shared MessageBus, scoped to one device's topic namespace."""

from collections.abc import Awaitable, Callable
from functools import partial

from loguru import logger

from src.condition_service.domain.protocols import DeviceControl, MessageBus

KeyedMessageHandler = Callable[[str, bytes], Awaitable[None]]


class BusDeviceControl(DeviceControl):
    """
    Maps device-relative topics to `<device topic>/<topic>` on the bus.

    Messages on subscribed topics are handed to on_message(key, payload),
    where key is the one given at subscribe time.
    """

    def __init__(self, bus: MessageBus, device_topic: str, device_id: str, on_message: KeyedMessageHandler | None = None):
        """
        Initialize device control.

        Args:
            bus: Shared message bus
            device_topic: Topic prefix of the device (e.g., "openchirp/device/<id>")
            device_id: Device identifier
            on_message: Receiver for inbound messages
        """
        self.bus = bus
        self.device_topic = device_topic.rstrip("/")
        self._device_id = device_id
        self.on_message = on_message
        self._subscriptions: dict[str, str] = {}

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def subscriptions(self) -> dict[str, str]:
        """Device-relative topic -> key."""
        return dict(self._subscriptions)

    def full_topic(self, topic: str) -> str:
        return f"{self.device_topic}/{topic}"

    async def subscribe(self, topic: str, key: str) -> None:
        await self.bus.subscribe(self.full_topic(topic), partial(self._deliver, key))
        self._subscriptions[topic] = key
        logger.debug(f"Device {self._device_id} subscribed {topic} as '{key}'")

    async def unsubscribe(self, topic: str) -> None:
        if topic in self._subscriptions:
            await self.bus.unsubscribe(self.full_topic(topic))
            del self._subscriptions[topic]

    async def unsubscribe_all(self) -> None:
        for topic in list(self._subscriptions):
            await self.unsubscribe(topic)

    async def publish(self, topic: str, payload: str | bytes) -> None:
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        await self.bus.publish(self.full_topic(topic), payload)

    async def _deliver(self, key: str, topic: str, payload: bytes) -> None:
        if self.on_message is None:
            logger.warning(f"Dropping message on {topic}: no receiver for device {self._device_id}")
            return
        await self.on_message(key, payload)
