"""Shared utilities for plcmon services."""

from .models import Reading, RelativeRange, AbsoluteRange, parse_time_range
from .database import InfluxConfig, ReadingsStorage
from .config import load_yaml_config, get_config_path
from .errors import CollectorError, ConnectError, ReadError, WriteError, BusyError
from .logging import setup_logging

__all__ = [
    "Reading",
    "RelativeRange",
    "AbsoluteRange",
    "parse_time_range",
    "InfluxConfig",
    "ReadingsStorage",
    "load_yaml_config",
    "get_config_path",
    "CollectorError",
    "ConnectError",
    "ReadError",
    "WriteError",
    "BusyError",
    "setup_logging",
]
