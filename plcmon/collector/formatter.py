"""Turns raw PLC values into readings."""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional
import logging
import math

from plcmon.shared.models import Reading

logger = logging.getLogger(__name__)


def to_channel_value(value: Any) -> Optional[float]:
    """Convert a raw PLC value to a finite float, or None if it isn't one."""
    if value is None:
        return None
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        number = float(value.strip()) if isinstance(value, str) else float(value)
    except (ValueError, TypeError):
        return None
    return number if math.isfinite(number) else None


def format_reading(
    raw: Mapping[str, Any],
    address_map: Mapping[str, str],
    timestamp: Optional[datetime] = None,
) -> Reading:
    """Build a reading with one value for every channel in the address map.

    Missing or non-numeric raw values become 0.0 so every stored point has
    the same fields.

    Args:
        raw: Address -> raw value, as returned by a protocol client.
        address_map: Channel name -> address.
        timestamp: Sample time, defaults to now (UTC).
    """
    channels = {}
    substituted = []
    for name, address in address_map.items():
        value = to_channel_value(raw.get(address))
        if value is None:
            substituted.append(name)
            value = 0.0
        channels[name] = value

    if substituted:
        logger.debug(f"Substituted 0.0 for missing or non-numeric channels: {', '.join(substituted)}")

    return Reading(timestamp=timestamp or datetime.now(timezone.utc), channels=channels)
