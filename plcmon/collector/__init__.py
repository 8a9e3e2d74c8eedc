"""PLC data collection service."""

from .collector import CollectorService, CollectorState, CollectorStatus, ControlResult, CycleResult


def main():
    """Entry point for collector service."""
    import argparse
    from aiohttp import web
    from .config.settings import load_config
    from .readers import DummyClient, create_client
    from plcmon.api import create_app
    from plcmon.shared.logging import setup_logging
    from plcmon.shared.database import ReadingsStorage

    parser = argparse.ArgumentParser(description="PLC data collection service")
    parser.add_argument("-c", "--config", help="Path to YAML config", default=None)
    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config.log_level)

    storage = ReadingsStorage(
        config.influx,
        categories=config.categories,
        source_tag=config.source_tag,
    )
    service = CollectorService(
        create_client(config),
        storage,
        config.address_map,
        interval_seconds=config.collection_interval,
        tags=config.tags,
    )

    app = create_app(
        service,
        storage,
        DummyClient(config.channels),
        autostart=config.autostart,
        autostart_delay=config.autostart_delay,
    )
    web.run_app(app, host=config.http.host, port=config.http.port)


__all__ = [
    "CollectorService",
    "CollectorState",
    "CollectorStatus",
    "ControlResult",
    "CycleResult",
    "main",
]
