from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set
import asyncio
import logging

from plcmon.shared.database import ReadingsStorage
from plcmon.shared.errors import BusyError, WriteError
from plcmon.shared.models import Reading
from .formatter import format_reading
from .readers.base import ProtocolClient
from .timer import IntervalTimer

logger = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], Awaitable[None]]], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class CollectorState(Enum):
    """Scheduling states of the collector."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class ControlResult:
    """Outcome of a start/stop request."""
    success: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "message": self.message}


@dataclass
class CycleResult:
    """Outcome of one connect -> read -> format -> write cycle."""
    success: bool
    timestamp: datetime
    data: Optional[Dict[str, float]] = None
    error: Optional[str] = None
    stage: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }
        if not self.success:
            result["error"] = self.error
            result["stage"] = self.stage
        return result


@dataclass
class CollectorStatus:
    """Point-in-time snapshot of the collector."""
    state: CollectorState
    interval_seconds: int
    last_success_timestamp: Optional[datetime]
    last_run_timestamp: Optional[datetime]
    last_error: Optional[str]
    success_count: int
    error_count: int
    skipped_count: int

    @property
    def running(self) -> bool:
        return self.state is CollectorState.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON."""
        return {
            "running": self.running,
            "state": self.state.value,
            "intervalSeconds": self.interval_seconds,
            "lastSuccessTimestamp": _isoformat(self.last_success_timestamp),
            "lastRunTimestamp": _isoformat(self.last_run_timestamp),
            "lastError": self.last_error,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "skippedCount": self.skipped_count,
        }


class CollectorService:
    """Polls the PLC on a fixed interval and stores every sample.

    At most one cycle runs at a time. Scheduled ticks that find a cycle in
    flight are skipped; read_now() rejects with BusyError. Counters and
    timestamps are only touched while the run guard is held.
    """

    def __init__(
        self,
        client: ProtocolClient,
        storage: ReadingsStorage,
        address_map: Dict[str, str],
        interval_seconds: int = 10,
        tags: Optional[Dict[str, str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        timer_factory: TimerFactory = IntervalTimer,
    ):
        self.client = client
        self.storage = storage
        self.address_map = dict(address_map)
        self.tags = tags or {}
        self.clock = clock or _utcnow
        self._timer_factory = timer_factory
        self.interval_seconds = self._validate_interval(interval_seconds)

        self.state = CollectorState.STOPPED
        self.last_success_timestamp: Optional[datetime] = None
        self.last_run_timestamp: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.success_count = 0
        self.error_count = 0
        self.skipped_count = 0

        self._guard = asyncio.Lock()
        self._timer = None
        self._retired_timers: list = []
        self._pending: Set[asyncio.Task] = set()

        logger.info(f"Initialized CollectorService with {len(self.address_map)} channels")

    @staticmethod
    def _validate_interval(interval_seconds: Any) -> int:
        if isinstance(interval_seconds, bool) or not isinstance(interval_seconds, int):
            raise ValueError(f"Interval must be an integer number of seconds, got {interval_seconds!r}")
        if interval_seconds < 1:
            raise ValueError(f"Interval must be at least 1 second, got {interval_seconds}")
        return interval_seconds

    @property
    def running(self) -> bool:
        return self.state is CollectorState.RUNNING

    @property
    def busy(self) -> bool:
        return self._guard.locked()

    def start(self, interval_seconds: Optional[int] = None) -> ControlResult:
        """Run one cycle now, then one every interval_seconds.

        Must be called from the event loop.

        Raises:
            ValueError: If the interval is not an integer >= 1.
        """
        if self.state is not CollectorState.STOPPED:
            return ControlResult(False, "Service is already running")

        interval = self._validate_interval(
            self.interval_seconds if interval_seconds is None else interval_seconds
        )

        self.state = CollectorState.STARTING
        self.interval_seconds = interval
        logger.info(f"Starting PLC data collection service with interval: {interval} seconds")

        task = asyncio.get_running_loop().create_task(self.tick())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        self._timer = self._timer_factory(interval, self.tick)
        self._timer.start()

        self.state = CollectorState.RUNNING
        return ControlResult(True, f"Service started with interval: {interval} seconds")

    def stop(self) -> ControlResult:
        """Cancel future ticks. A cycle already in flight runs to completion."""
        if self.state is not CollectorState.RUNNING:
            return ControlResult(False, "Service is not running")

        self.state = CollectorState.STOPPING
        logger.info("Stopping PLC data collection service")
        if self._timer is not None:
            self._timer.cancel()
            self._retired_timers.append(self._timer)
            self._timer = None
        # only timers with callbacks still running need waiting on at shutdown
        self._retired_timers = [
            timer for timer in self._retired_timers if not getattr(timer, "idle", True)
        ]

        self.state = CollectorState.STOPPED
        return ControlResult(True, "Service stopped")

    def status(self) -> CollectorStatus:
        return CollectorStatus(
            state=self.state,
            interval_seconds=self.interval_seconds,
            last_success_timestamp=self.last_success_timestamp,
            last_run_timestamp=self.last_run_timestamp,
            last_error=self.last_error,
            success_count=self.success_count,
            error_count=self.error_count,
            skipped_count=self.skipped_count,
        )

    async def tick(self) -> None:
        """Scheduled cycle; skipped when another cycle holds the guard."""
        if self._guard.locked():
            self.skipped_count += 1
            logger.debug("Collection cycle already in progress, skipping tick")
            return

        async with self._guard:
            await self._run_cycle()

    async def read_now(self) -> CycleResult:
        """Run a cycle immediately and return its result.

        Raises:
            BusyError: If a cycle is already in flight.
        """
        if self._guard.locked():
            raise BusyError("A collection cycle is already in progress")

        async with self._guard:
            return await self._run_cycle()

    async def shutdown(self) -> None:
        """Stop scheduling and wait for cycles that are still running."""
        self.stop()
        for timer in self._retired_timers:
            wait_inflight = getattr(timer, "wait_inflight", None)
            if wait_inflight is not None:
                await wait_inflight()
        self._retired_timers.clear()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _read_channels(self) -> Dict[str, Any]:
        """Connect, read every channel address, disconnect. Runs in a worker thread."""
        with self.client.session():
            return self.client.read_all(set(self.address_map.values()))

    async def _run_cycle(self) -> CycleResult:
        """One guarded cycle. Never raises; failures are counted and returned."""
        loop = asyncio.get_running_loop()
        logger.info("Starting PLC data collection cycle")

        try:
            raw = await loop.run_in_executor(None, self._read_channels)
        except Exception as e:
            return self._record_failure(e)

        reading = format_reading(raw, self.address_map, timestamp=self.clock())
        logger.debug(f"Read data from PLC: {dict(reading.channels)}")

        try:
            stored = await loop.run_in_executor(None, self.storage.write, reading, self.tags)
        except Exception as e:
            return self._record_failure(WriteError(str(e)), reading)
        if not stored:
            return self._record_failure(WriteError("Failed to store reading in InfluxDB"), reading)

        self.success_count += 1
        self.last_success_timestamp = reading.timestamp
        self.last_run_timestamp = reading.timestamp
        logger.info(f"Data stored in InfluxDB at {reading.timestamp.isoformat()}")
        return CycleResult(success=True, timestamp=reading.timestamp, data=dict(reading.channels))

    def _record_failure(self, error: Exception, reading: Optional[Reading] = None) -> CycleResult:
        stage = getattr(error, "stage", "cycle")
        now = reading.timestamp if reading else self.clock()

        self.error_count += 1
        self.last_run_timestamp = now
        self.last_error = f"{stage}: {error}"
        logger.error(f"PLC data collection failed at {stage} stage: {error}")

        return CycleResult(
            success=False,
            timestamp=now,
            data=dict(reading.channels) if reading else None,
            error=str(error),
            stage=stage,
        )
