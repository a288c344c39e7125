"""ServiceClient: device lifecycle dispatch and service status for one service instance."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from loguru import logger
from pydantic import ValidationError

from src.condition_service.application.device_session import DeviceSession
from src.condition_service.application.session_worker import SessionWorker
from src.condition_service.domain.models import ServiceStatus
from src.condition_service.domain.protocols import ExpressionEngine, Forwarder, MessageBus
from src.condition_service.domain.schemas import DeviceRecord, DeviceStatusReport, StatusMessage, ThingEvent
from src.condition_service.infrastructure.device_control import BusDeviceControl
from src.condition_service.infrastructure.logging import device_logging


@dataclass
class LinkedDevice:
    """A device with an armed session."""

    session: DeviceSession
    worker: SessionWorker
    config: dict[str, str] = field(default_factory=dict)


class ServiceClient:
    """
    Owns the sessions of all devices linked to this service.

    Devices are linked from the initial device list and from framework events
    on `<prefix>/service/<id>/thing/events`. Link and config-change results are
    reported on the service status topic.
    """

    def __init__(
        self,
        bus: MessageBus,
        engine: ExpressionEngine,
        forwarder: Forwarder,
        service_id: str,
        running_status: bool = True,
        mailbox_size: int = 1024,
        topic_prefix: str = "openchirp",
    ):
        """
        Initialize service client.

        Args:
            bus: Shared message bus
            engine: Expression engine shared by all sessions
            forwarder: HTTP forwarder shared by all sessions
            service_id: Identifier of this service instance
            running_status: Publish a "Running" status after every device event
            mailbox_size: Per-device message queue bound
            topic_prefix: Root of all topics
        """
        self.bus = bus
        self.engine = engine
        self.forwarder = forwarder
        self.service_id = service_id
        self.running_status = running_status
        self.mailbox_size = mailbox_size
        self.topic_prefix = topic_prefix.rstrip("/")

        self._devices: dict[str, LinkedDevice] = {}
        self._stopping = False

    @property
    def events_topic(self) -> str:
        return f"{self.topic_prefix}/service/{self.service_id}/thing/events"

    @property
    def status_topic(self) -> str:
        return f"{self.topic_prefix}/service/{self.service_id}/status"

    def device_topic(self, device_id: str) -> str:
        return f"{self.topic_prefix}/device/{device_id}"

    @property
    def devices(self) -> dict[str, LinkedDevice]:
        return dict(self._devices)

    def session(self, device_id: str) -> DeviceSession | None:
        device = self._devices.get(device_id)
        return device.session if device else None

    async def start(self, devices: Iterable[DeviceRecord] = ()) -> None:
        """Listen for framework events and link the initially known devices."""
        self._stopping = False
        await self.bus.subscribe(self.events_topic, self._on_event)

        for device in devices:
            await self.link_device(device.id, device.config)

        logger.info(f"Service {self.service_id} started with {len(self._devices)} linked devices")

    async def stop(self) -> None:
        """Stop taking events, unlink every device and publish the final status."""
        self._stopping = True
        await self.bus.unsubscribe(self.events_topic)

        while self._devices:
            await self.unlink_device(next(iter(self._devices)), pulse=False)

        await self.set_status(ServiceStatus.SHUTTING_DOWN)

    async def set_status(self, status: ServiceStatus | str) -> None:
        """Publish a service status message."""
        message = status.value if isinstance(status, ServiceStatus) else status
        await self.bus.publish(self.status_topic, StatusMessage(message=message).model_dump_json().encode("utf-8"))
        logger.info(f"Published service status: {message}")

    async def link_device(self, device_id: str, config: Mapping[str, str]) -> tuple[str, bool]:
        """
        Create and link a session for a device. An already linked device is reconfigured.

        Returns:
            (message, ok) as returned by the session
        """
        if device_id in self._devices:
            return await self.update_device(device_id, config)

        control = BusDeviceControl(self.bus, self.device_topic(device_id), device_id)
        session = DeviceSession(control, self.engine, self.forwarder)
        worker = SessionWorker(session, maxsize=self.mailbox_size)
        control.on_message = worker.submit

        with device_logging(device_id):
            message, ok = await session.link(config)

        if self._stopping:
            # Shutdown started while linking
            if ok:
                await session.unlink()
            return message, False

        if ok:
            worker.start()
            self._devices[device_id] = LinkedDevice(session=session, worker=worker, config=dict(config))

        await self._report_device(device_id, message)
        await self._pulse()
        return message, ok

    async def update_device(self, device_id: str, config: Mapping[str, str]) -> tuple[str, bool]:
        """Apply a new full configuration to a device, linking it if unknown."""
        device = self._devices.get(device_id)
        if device is None:
            return await self.link_device(device_id, config)

        original = device.config
        changes = {key: value for key, value in config.items() if original.get(key) != value}
        # Keys dropped from the configuration read as empty
        changes.update({key: "" for key in original.keys() - config.keys()})

        with device_logging(device_id):
            message, changed = await device.session.config_change(changes, original)

        if self._stopping:
            return message, False

        if changed:
            device.config = dict(config)

        await self._report_device(device_id, message)
        await self._pulse()
        return message, changed

    async def unlink_device(self, device_id: str, pulse: bool = True) -> None:
        """Unlink a device and stop its worker. Unknown devices are ignored."""
        device = self._devices.pop(device_id, None)
        if device is None:
            logger.debug(f"Ignoring unlink of unknown device {device_id}")
            return

        with device_logging(device_id):
            await device.session.unlink()
            await device.worker.stop()

        if pulse:
            await self._pulse()

    async def wait_idle(self) -> None:
        """Wait until every device has processed its queued messages."""
        for device in list(self._devices.values()):
            await device.worker.join()

    async def _on_event(self, topic: str, payload: bytes) -> None:
        """Dispatch a framework device event."""
        if self._stopping:
            logger.debug(f"Ignoring event on {topic}: service is stopping")
            return

        try:
            event = ThingEvent.model_validate_json(payload)
        except ValidationError as e:
            logger.error(f"Ignoring malformed event on {topic}: {e}")
            return

        logger.debug(f"Received {event.action} event for device {event.thing.id}")

        if event.action == "new":
            await self.link_device(event.thing.id, event.thing.config)
        elif event.action == "update":
            await self.update_device(event.thing.id, event.thing.config)
        elif event.action == "delete":
            await self.unlink_device(event.thing.id)

    async def _report_device(self, device_id: str, message: str) -> None:
        report = DeviceStatusReport.create(device_id, message)
        await self.bus.publish(self.status_topic, report.model_dump_json().encode("utf-8"))

    async def _pulse(self) -> None:
        if self.running_status and not self._stopping:
            await self.set_status(ServiceStatus.RUNNING)
