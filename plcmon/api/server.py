"""HTTP control and history endpoints for the dashboard."""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from aiohttp import web

from plcmon.collector.collector import CollectorService
from plcmon.collector.readers.dummy import DummyClient
from plcmon.shared.database import ReadingsStorage
from plcmon.shared.errors import BusyError
from plcmon.shared.models import AbsoluteRange, Reading, parse_time_range

logger = logging.getLogger(__name__)

COLLECTOR_KEY = web.AppKey("collector", CollectorService)
STORAGE_KEY = web.AppKey("storage", ReadingsStorage)
SAMPLER_KEY = web.AppKey("sampler", DummyClient)
AUTOSTART_KEY = web.AppKey("autostart_task", asyncio.Task)

USAGE = "Use ?action=start|stop|status|read to control the service"
MAX_TEST_POINTS = 1000


def _error(message: str, status: int, **extra) -> web.Response:
    return web.json_response({"success": False, "error": message, **extra}, status=status)


def _parse_interval(raw: str) -> int:
    """Parse a whole number of seconds; '10' and '10.0' are fine, '10.5' is not."""
    value = float(raw)
    if not value.is_integer():
        raise ValueError("interval must be a whole number of seconds")
    return int(value)


async def handle_collector(request: web.Request) -> web.Response:
    """GET /collector?action=start|stop|status|read

    `interval` must be a whole number of seconds >= 1; anything else is a 400.
    """
    service = request.app[COLLECTOR_KEY]
    action = request.query.get("action")

    if action == "start":
        raw_interval = request.query.get("interval")
        try:
            interval = _parse_interval(raw_interval) if raw_interval is not None else None
            result = service.start(interval)
        except ValueError as e:
            return _error(f"Invalid interval {raw_interval!r}: {e}", 400)
        return web.json_response(result.to_dict())

    if action == "stop":
        return web.json_response(service.stop().to_dict())

    if action == "status":
        return web.json_response(service.status().to_dict())

    if action == "read":
        try:
            result = await service.read_now()
        except BusyError as e:
            return _error(str(e), 409)
        if not result.success:
            return _error(result.error, 500, stage=result.stage, timestamp=result.timestamp.isoformat())
        return web.json_response(result.to_dict())

    return web.json_response({
        "message": "PLC Data Collection Service",
        "usage": USAGE,
        **service.status().to_dict(),
    })


async def handle_history(request: web.Request) -> web.Response:
    """GET /history?range=24h|7d|30d|custom&start=&end="""
    storage = request.app[STORAGE_KEY]
    query = request.query
    range_name = query.get("range") or query.get("timeRange") or "24h"
    start = query.get("start") or query.get("startDate")
    end = query.get("end") or query.get("endDate")

    try:
        time_range = parse_time_range(range_name, start, end)
    except ValueError as e:
        return _error(str(e), 400)

    loop = asyncio.get_running_loop()
    history = await loop.run_in_executor(None, storage.get_history, time_range)

    if isinstance(time_range, AbsoluteRange):
        range_info = {"range": "custom", "start": time_range.start.isoformat(), "end": time_range.end.isoformat()}
    else:
        range_info = {"range": time_range.name}
    return web.json_response({**range_info, **history})


async def handle_latest(request: web.Request) -> web.Response:
    """GET /latest - most recent stored point."""
    storage = request.app[STORAGE_KEY]
    latest = await asyncio.get_running_loop().run_in_executor(None, storage.get_latest)
    if latest is None:
        return _error("No readings found", 404)
    return web.json_response(latest)


async def handle_test_insert(request: web.Request) -> web.Response:
    """GET /test-insert?count=&interval= - store simulated readings, `interval` minutes apart."""
    storage = request.app[STORAGE_KEY]
    sampler = request.app[SAMPLER_KEY]

    try:
        count = int(request.query.get("count", "1"))
        interval = int(request.query.get("interval", "10"))
    except ValueError:
        return _error("count and interval must be integers", 400)
    if not 1 <= count <= MAX_TEST_POINTS or interval < 0:
        return _error(f"count must be between 1 and {MAX_TEST_POINTS}, interval must not be negative", 400)

    now = storage.clock()
    readings = [
        Reading(timestamp=now - timedelta(minutes=i * interval), channels=sampler.sample())
        for i in range(count)
    ]

    def store_all() -> int:
        return sum(1 for reading in readings if storage.write(reading))

    stored = await asyncio.get_running_loop().run_in_executor(None, store_all)
    if stored < count:
        return _error(f"Stored {stored} of {count} test data points", 500)

    return web.json_response({
        "success": True,
        "message": f"Successfully inserted {count} test data points into InfluxDB",
        "interval": f"{interval} minutes between data points",
    })


async def _autostart(app: web.Application, interval: int, delay: float) -> None:
    await asyncio.sleep(delay)
    result = app[COLLECTOR_KEY].start(interval)
    logger.info(result.message)


def create_app(
    service: CollectorService,
    storage: ReadingsStorage,
    sampler: DummyClient,
    autostart: bool = False,
    autostart_delay: float = 5.0,
    autostart_interval: Optional[int] = None,
) -> web.Application:
    """Build the aiohttp application around an existing collector service."""
    app = web.Application()
    app[COLLECTOR_KEY] = service
    app[STORAGE_KEY] = storage
    app[SAMPLER_KEY] = sampler

    app.router.add_get("/collector", handle_collector)
    app.router.add_get("/history", handle_history)
    app.router.add_get("/latest", handle_latest)
    app.router.add_get("/test-insert", handle_test_insert)

    async def on_startup(app: web.Application):
        if autostart:
            interval = autostart_interval or service.interval_seconds
            logger.info(f"Collector will start in {autostart_delay}s (every {interval} seconds)")
            app[AUTOSTART_KEY] = asyncio.get_running_loop().create_task(
                _autostart(app, interval, autostart_delay)
            )

    async def on_cleanup(app: web.Application):
        task = app.get(AUTOSTART_KEY)
        if task is not None:
            task.cancel()
        await service.shutdown()
        storage.close()
        logger.info("PLC data collection service shut down")

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app
