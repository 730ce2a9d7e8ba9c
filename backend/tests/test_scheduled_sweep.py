import asyncio

import pytest
from fastapi.testclient import TestClient

from paylink import main
from paylink.errors import GatewayUnavailable
from paylink.services.poller import SweepSummary


class FlakyPoller:
    """Fails the first two sweeps in different ways, then succeeds."""

    def __init__(self):
        self.calls = 0

    def run_once(self, session_factory):
        self.calls += 1
        if self.calls == 1:
            raise GatewayUnavailable()
        if self.calls == 2:
            raise RuntimeError("unexpected gateway reply")
        return SweepSummary()


def test_scheduled_sweep_keeps_running_after_failures(monkeypatch):
    poller = FlakyPoller()
    monkeypatch.setattr(main, "get_gateway", lambda: object())
    monkeypatch.setattr(main, "get_poller", lambda gateway, transitions: poller)

    async def run_until_third_sweep():
        task = asyncio.create_task(main._poll_forever(0))
        try:
            while poller.calls < 3:
                assert not task.done(), "sweep loop exited"
                await asyncio.sleep(0.01)
        finally:
            task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(asyncio.wait_for(run_until_third_sweep(), timeout=5))

    assert poller.calls >= 3


def test_lifespan_starts_sweep_only_when_enabled(monkeypatch):
    started = []

    async def fake_poll_forever(interval):
        started.append(interval)
        await asyncio.Event().wait()

    monkeypatch.setattr(main, "_poll_forever", fake_poll_forever)

    monkeypatch.setattr(main.settings, "POLL_INTERVAL_SECONDS", 0)
    with TestClient(main.app) as client:
        client.get("/health")
    assert started == []

    monkeypatch.setattr(main.settings, "POLL_INTERVAL_SECONDS", 30)
    with TestClient(main.app) as client:
        client.get("/health")
    assert started == [30]
