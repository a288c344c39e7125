"""
Tests for SessionWorker.
"""

import pytest

from src.condition_service.application.session_worker import SessionWorker
from tests.conftest import OUT_TOPIC


class TestSessionWorker:
    """Tests for the per-device mailbox."""

    @pytest.mark.asyncio
    async def test_processes_in_order(self, session, bus):
        await session.link({"expr": "a > 0", "value": "a"})
        worker = SessionWorker(session)
        worker.start()

        for value in (3, 1, 2):
            await worker.submit("a", str(value).encode())
        await worker.join()

        assert bus.messages(OUT_TOPIC) == [b"3", b"1", b"2"]
        assert worker.stats == {"processed": 3, "failed": 0}
        await worker.stop()

    @pytest.mark.asyncio
    async def test_stop_discards_queued_messages(self, session, bus):
        await session.link({"expr": "a > 0", "value": "a"})
        worker = SessionWorker(session)

        await worker.submit("a", b"1")
        worker.start()
        await worker.stop()

        assert worker.running is False
        # join() must not hang on discarded messages
        await worker.join()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self, session):
        worker = SessionWorker(session)
        worker.start()
        task = worker._task

        worker.start()

        assert worker._task is task
        await worker.stop()

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_stop_worker(self, session, bus, monkeypatch):
        await session.link({"expr": "a > 0", "value": "a"})
        worker = SessionWorker(session)
        worker.start()

        original_publish = bus.publish
        calls = {"count": 0}

        async def flaky_publish(topic, payload):
            calls["count"] += 1
            if calls["count"] == 1:
                raise ConnectionError("bus down")
            await original_publish(topic, payload)

        monkeypatch.setattr(bus, "publish", flaky_publish)

        await worker.submit("a", b"1")
        await worker.submit("a", b"2")
        await worker.join()

        assert worker.stats == {"processed": 1, "failed": 1}
        assert bus.messages(OUT_TOPIC) == [b"2"]
        await worker.stop()
