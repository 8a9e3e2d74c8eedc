"""Core data models for PLC readings."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class Reading:
    """A single sample of every configured PLC channel.

    All channel values are finite floats. The channel mapping is read-only
    once the reading is built.
    """
    timestamp: datetime
    channels: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "channels", MappingProxyType(dict(self.channels)))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "data": dict(self.channels),
        }


@dataclass(frozen=True)
class RelativeRange:
    """A window ending now, e.g. the last 24 hours."""
    name: str

    DURATIONS = {
        "24h": timedelta(hours=24),
        "7d": timedelta(days=7),
        "30d": timedelta(days=30),
    }

    def __post_init__(self):
        if self.name not in self.DURATIONS:
            raise ValueError(f"Unknown relative range: {self.name}")

    @property
    def duration(self) -> timedelta:
        return self.DURATIONS[self.name]

    def bounds(self, now: datetime) -> Tuple[datetime, datetime]:
        return now - self.duration, now


@dataclass(frozen=True)
class AbsoluteRange:
    """A fixed [start, end] window."""
    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError("Range start must not be after range end")

    def bounds(self, now: datetime) -> Tuple[datetime, datetime]:
        return self.start, self.end


TimeRange = Union[RelativeRange, AbsoluteRange]


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp, treating naive values as UTC.

    Raises:
        ValueError: If the value is not a valid timestamp.
    """
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_time_range(
    name: Optional[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> TimeRange:
    """Build a time range from request-style parameters.

    'custom' requires both start and end. Unknown names fall back to 24h.

    Raises:
        ValueError: If a custom range is incomplete or unparseable.
    """
    if name == "custom":
        if not start or not end:
            raise ValueError("Custom time range requires both start and end parameters")
        return AbsoluteRange(parse_timestamp(start), parse_timestamp(end))

    if name not in RelativeRange.DURATIONS:
        name = "24h"
    return RelativeRange(name)
