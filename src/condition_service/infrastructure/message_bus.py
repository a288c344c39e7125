"""Message bus implementations: in-memory and Redis pub/sub."""

import asyncio
from collections.abc import Callable

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import ConnectionError as RedisConnectionError

from src.condition_service.domain.protocols import MessageBus, MessageHandler


class InMemoryMessageBus(MessageBus):
    """Process-local bus for testing and single-process runs. Records every publish."""

    def __init__(self):
        self.published: list[tuple[str, bytes]] = []
        self.handlers: dict[str, MessageHandler] = {}

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        self.handlers.clear()

    async def publish(self, topic: str, payload: bytes) -> None:
        """Record the payload and deliver it to the topic's handler, if any."""
        self.published.append((topic, payload))

        handler = self.handlers.get(topic)
        if handler is not None:
            await handler(topic, payload)

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        self.handlers[topic] = handler

    async def unsubscribe(self, topic: str) -> None:
        self.handlers.pop(topic, None)

    def messages(self, topic: str) -> list[bytes]:
        """Payloads published on a topic, oldest first."""
        return [payload for published_topic, payload in self.published if published_topic == topic]

    def clear(self):
        """Clear recorded publishes."""
        self.published.clear()

    def __len__(self):
        return len(self.published)


class RedisMessageBus(MessageBus):
    """
    Bus over Redis pub/sub, one channel per topic.

    A single listener task reads the pub/sub connection and awaits the handler
    registered for each message's channel, so handlers must return quickly
    (device messages are handed to per-device workers).
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        poll_timeout: float = 1.0,
        on_connection_lost: Callable[[Exception], None] | None = None,
    ):
        """
        Initialize bus.

        Args:
            url: Redis connection URL
            poll_timeout: Seconds to wait for a message per listener iteration
            on_connection_lost: Called once if the listener loses its connection
        """
        self.url = url
        self.poll_timeout = poll_timeout
        self.on_connection_lost = on_connection_lost
        self.client: redis.Redis | None = None
        self._pubsub = None
        self._handlers: dict[str, MessageHandler] = {}
        self._listener: asyncio.Task | None = None

    async def connect(self) -> None:
        """Connect and verify the server is reachable."""
        self.client = redis.from_url(self.url, decode_responses=False)
        await self.client.ping()
        self._pubsub = self.client.pubsub()
        logger.info(f"Redis connected: {self.url}")

    async def close(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None

        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None

        if self.client is not None:
            await self.client.aclose()
            self.client = None

        self._handlers.clear()
        logger.info("Redis connection closed")

    async def publish(self, topic: str, payload: bytes) -> None:
        if self.client is None:
            raise RuntimeError("Message bus not connected. Call connect() first.")
        await self.client.publish(topic, payload)

    async def subscribe(self, topic: str, handler: MessageHandler) -> None:
        if self._pubsub is None:
            raise RuntimeError("Message bus not connected. Call connect() first.")

        self._handlers[topic] = handler
        await self._pubsub.subscribe(topic)
        logger.debug(f"Subscribed to {topic}")

        # get_message() needs at least one subscription, so listen lazily
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen(), name="redis-bus-listener")

    async def unsubscribe(self, topic: str) -> None:
        if self._handlers.pop(topic, None) is not None and self._pubsub is not None:
            await self._pubsub.unsubscribe(topic)
            logger.debug(f"Unsubscribed from {topic}")

    async def _listen(self) -> None:
        """Main listener loop."""
        while True:
            try:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=self.poll_timeout)
            except RedisConnectionError as e:
                logger.error(f"Lost connection to Redis: {e}")
                self._connection_lost(e)
                return
            except Exception as e:
                # The bus stops delivering after any read failure
                logger.exception(f"Redis listener failed: {e}")
                self._connection_lost(e)
                return

            if message is None or message.get("type") != "message":
                continue

            channel = message["channel"]
            topic = channel.decode("utf-8") if isinstance(channel, bytes) else channel
            handler = self._handlers.get(topic)
            if handler is None:
                continue

            try:
                await handler(topic, message["data"])
            except Exception as e:
                logger.exception(f"Handler for {topic} failed: {e}")

    def _connection_lost(self, error: Exception) -> None:
        if self.on_connection_lost is not None:
            self.on_connection_lost(error)
