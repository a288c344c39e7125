"""Shared fixtures: in-memory bus, real expression engine, mock-transport forwarder, redis stubs."""

import asyncio

import httpx
import pytest

from src.condition_service.application.device_session import DeviceSession
from src.condition_service.infrastructure.device_control import BusDeviceControl
from src.condition_service.infrastructure.expression_engine import SimpleEvalEngine
from src.condition_service.infrastructure.http_forwarder import HttpForwarder
from src.condition_service.infrastructure.message_bus import InMemoryMessageBus

DEVICE_ID = "dev-1"
DEVICE_TOPIC = f"openchirp/device/{DEVICE_ID}"
OUT_TOPIC = f"{DEVICE_TOPIC}/transducer/out"
ERR_TOPIC = f"{DEVICE_TOPIC}/transducer/err"


def make_forwarder(handler, timeout: float = 1.0) -> HttpForwarder:
    """Forwarder whose requests are answered by handler(request)."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpForwarder(client=client, timeout=timeout)


def redis_message(channel: str, data: bytes) -> dict:
    """A pub/sub message as redis.asyncio returns it."""
    return {"type": "message", "pattern": None, "channel": channel.encode(), "data": data}


class StubPubSub:
    """Replays scripted pub/sub reads (messages or exceptions to raise), then idles."""

    def __init__(self, script=()):
        self.script = list(script)
        self.channels: set[str] = set()
        self.closed = False

    async def subscribe(self, *channels):
        self.channels.update(channels)

    async def unsubscribe(self, *channels):
        self.channels.difference_update(channels)

    async def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        await asyncio.sleep(0)
        if not self.script:
            return None
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self):
        self.closed = True


class StubRedis:
    """Records publishes and hands out one StubPubSub."""

    def __init__(self, pubsub: StubPubSub):
        self.published: list[tuple[str, bytes]] = []
        self._pubsub = pubsub
        self.closed = False

    async def ping(self):
        return True

    async def publish(self, channel, payload):
        self.published.append((channel, payload))

    def pubsub(self):
        return self._pubsub

    async def aclose(self):
        self.closed = True


@pytest.fixture
def bus():
    return InMemoryMessageBus()


@pytest.fixture
def engine():
    return SimpleEvalEngine()


@pytest.fixture
def http_requests():
    """Requests received by the default forwarder."""
    return []


@pytest.fixture
def forwarder(http_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        return httpx.Response(200)

    return make_forwarder(handler)


@pytest.fixture
def control(bus):
    return BusDeviceControl(bus, DEVICE_TOPIC, DEVICE_ID)


@pytest.fixture
def session(control, engine, forwarder):
    return DeviceSession(control, engine, forwarder)
