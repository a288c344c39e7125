"""Per-device mailbox that feeds messages to a DeviceSession in arrival order."""

import asyncio

from loguru import logger

from src.condition_service.application.device_session import DeviceSession
from src.condition_service.infrastructure.logging import device_logging


class SessionWorker:
    """
    Single consumer task draining one device's message queue.

    Devices get independent workers, so a slow forward for one device does not
    hold up the others, while messages of a single device stay ordered.
    """

    def __init__(self, session: DeviceSession, maxsize: int = 1024):
        """
        Initialize worker.

        Args:
            session: Session receiving the messages
            maxsize: Queue bound; submit() waits while the queue is full (0 = unbounded)
        """
        self.session = session
        self._queue: asyncio.Queue[tuple[str, bytes]] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None
        self.stats = {
            "processed": 0,
            "failed": 0,
        }

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the consumer task."""
        if self.running:
            logger.warning(f"Worker for {self.session.device_id} already running")
            return
        self._task = asyncio.create_task(self._run(), name=f"session-{self.session.device_id}")

    async def stop(self) -> None:
        """Stop the consumer task, discarding queued messages."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    async def submit(self, key: str, payload: bytes) -> None:
        """Queue a message for the session."""
        await self._queue.put((key, payload))

    async def join(self) -> None:
        """Wait until every queued message has been processed."""
        await self._queue.join()

    async def _run(self) -> None:
        """Main worker loop."""
        with device_logging(self.session.device_id):
            while True:
                key, payload = await self._queue.get()
                try:
                    await self.session.message(key, payload)
                    self.stats["processed"] += 1
                except Exception as e:
                    # Session errors are already published; this is a bus failure
                    self.stats["failed"] += 1
                    logger.exception(f"Failed to process '{key}' message: {e}")
                finally:
                    self._queue.task_done()
