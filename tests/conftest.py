"""
Shared test fixtures for the plcmon test suite.
"""

import asyncio
import threading
from datetime import datetime, timedelta, timezone

import pytest

from plcmon.collector.collector import CollectorService
from plcmon.collector.config.settings import default_channels
from plcmon.collector.readers.base import ProtocolClient
from plcmon.collector.readers.dummy import DummyClient
from plcmon.shared.errors import ConnectError, ReadError

FIXED_NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Returns a fixed time that tests can advance."""

    def __init__(self, now=FIXED_NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class StubClient(ProtocolClient):
    """Protocol client returning canned values, optionally failing or blocking."""

    def __init__(self, values=None, fail_connect=False, fail_read=False, block=False):
        self.values = values or {}
        self.fail_connect = fail_connect
        self.fail_read = fail_read
        self.block = block
        self.entered = threading.Event()
        self.release = threading.Event()
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.read_calls = 0

    def connect(self):
        self.connect_calls += 1
        if self.fail_connect:
            raise ConnectError("connection refused")

    def read_all(self, addresses):
        self.read_calls += 1
        self.entered.set()
        if self.block:
            self.release.wait(5)
        if self.fail_read:
            raise ReadError("short read")
        return {address: self.values[address] for address in addresses if address in self.values}

    def disconnect(self):
        self.disconnect_calls += 1

    def check_health(self):
        return not self.fail_connect


class StubStorage:
    """In-memory stand-in for ReadingsStorage."""

    def __init__(self, succeed=True, clock=None):
        self.succeed = succeed
        self.clock = clock or FakeClock()
        self.writes = []
        self.history_requests = []
        self.latest = None
        self.closed = False

    def write(self, reading, tags=None):
        if not self.succeed:
            return False
        self.writes.append((reading, tags))
        return True

    def get_history(self, time_range):
        self.history_requests.append(time_range)
        return {"temperatures": [], "humidity": [], "airSpeed": []}

    def get_latest(self):
        return self.latest

    def close(self):
        self.closed = True


class ManualTimer:
    """Timer that only fires when the test says so."""

    instances = []

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.active = False
        ManualTimer.instances.append(self)

    def start(self):
        self.active = True

    def cancel(self):
        self.active = False

    async def fire(self):
        await self.callback()


async def wait_for_cycles(service, count, timeout=3.0):
    """Wait until the service has completed at least `count` cycles."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while service.success_count + service.error_count < count:
        if loop.time() > deadline:
            raise AssertionError(
                f"Timed out waiting for {count} cycles "
                f"(success={service.success_count}, errors={service.error_count})"
            )
        await asyncio.sleep(0.01)


async def wait_for_event(event, timeout=3.0):
    """Wait for a threading.Event without blocking the event loop."""
    loop = asyncio.get_running_loop()
    assert await loop.run_in_executor(None, event.wait, timeout)


@pytest.fixture
def channels():
    return default_channels()


@pytest.fixture
def address_map(channels):
    return {name: channel.address for name, channel in channels.items()}


@pytest.fixture
def plc_values(address_map):
    return {address: 20.0 + index for index, address in enumerate(address_map.values())}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def stub_client(plc_values):
    return StubClient(values=plc_values)


@pytest.fixture
def storage(clock):
    return StubStorage(clock=clock)


@pytest.fixture
def sampler(channels):
    return DummyClient(channels, seed=42)


@pytest.fixture
def manual_timer():
    ManualTimer.instances = []
    return ManualTimer


@pytest.fixture
def service(stub_client, storage, address_map, clock, manual_timer):
    """Collector with stub client/storage and a manual timer (not started)."""
    return CollectorService(
        stub_client,
        storage,
        address_map,
        interval_seconds=10,
        clock=clock,
        timer_factory=manual_timer,
    )
