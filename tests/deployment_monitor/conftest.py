"""
Shared fixtures for deployment monitor tests.
"""

import asyncio
from datetime import datetime, timezone
from typing import List

import pytest

from deployment_monitor.archive import ArchivalSink, InMemoryArchivalSink
from deployment_monitor.errors import ArchivalError
from deployment_monitor.models import Deployment, MetricSnapshot
from deployment_monitor.notifications import NotificationChannel
from deployment_monitor.sources import MetricsSource


# ============================================================
# TEST DOUBLES
# ============================================================

class RecordingChannel(NotificationChannel):
    """Channel that keeps every message it is sent."""

    name = "recording"

    def __init__(self):
        self.messages: List[str] = []
        self.closed = False

    async def send(self, message: str) -> bool:
        self.messages.append(message)
        return True

    async def close(self) -> None:
        self.closed = True


class FailingChannel(NotificationChannel):
    """Channel whose send always raises."""

    name = "failing"

    def __init__(self):
        self.attempts = 0

    async def send(self, message: str) -> bool:
        self.attempts += 1
        raise RuntimeError("connection reset")


class SelectiveArchive(ArchivalSink):
    """In-memory sink that fails for chosen deployment ids."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.records = []
        self.attempts = 0

    async def archive(self, deployment: Deployment) -> None:
        self.attempts += 1
        if deployment.deployment_id in self.fail_for:
            raise ArchivalError(f"disk full while archiving {deployment.deployment_id}")
        self.records.append(deployment.to_dict())


class SlowSource(MetricsSource):
    """Source whose fetch takes a fixed time; tracks concurrent fetches."""

    name = "slow"

    def __init__(self, delay: float, snapshot: MetricSnapshot = None):
        self.delay = delay
        self.snapshot = snapshot or MetricSnapshot()
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def fetch_snapshot(self) -> MetricSnapshot:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            return self.snapshot
        finally:
            self.active -= 1


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def base_time():
    return datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def baseline_snapshot():
    """Healthy pre-deployment metrics."""
    return MetricSnapshot(
        error_rate=1.0,
        response_time=200.0,
        throughput=1200.0,
        availability=99.9,
    )


@pytest.fixture
def recording_channel():
    return RecordingChannel()


@pytest.fixture
def failing_channel():
    return FailingChannel()


@pytest.fixture
def memory_archive():
    return InMemoryArchivalSink()


@pytest.fixture
def selective_archive():
    return SelectiveArchive


@pytest.fixture
def slow_source():
    return SlowSource
