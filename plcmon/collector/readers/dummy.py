import random
from typing import Any, Dict, Iterable, Optional
import logging

from plcmon.collector.config.settings import ChannelConfig
from .base import ProtocolClient

logger = logging.getLogger(__name__)

# (base value, max step) per channel category
SIMULATION_PROFILES = {
    "temperature": (24.0, 0.5),
    "humidity": (50.0, 2.0),
    "airflow": (10.0, 0.8),
}


class DummyClient(ProtocolClient):
    """Simulated controller for development and sample data.

    Values follow a random walk with mean reversion so charts look plausible.
    """

    def __init__(self, channels: Dict[str, ChannelConfig], seed: Optional[int] = None):
        self.channels = channels
        self._categories = {channel.address: channel.category for channel in channels.values()}
        self._random = random.Random(seed)
        self._connected = False

        # Keep last values to avoid wild jumps
        self.last_values: Dict[str, float] = {}
        logger.info(f"Initialized DummyClient with {len(channels)} simulated channels")

    def _get_numeric_value(self, address: str, base_value: float, variation: float) -> float:
        """Generate a somewhat realistic varying value"""
        if address not in self.last_values:
            self.last_values[address] = base_value

        current = self.last_values[address]
        new_value = current + self._random.uniform(-variation, variation)

        # Mean reversion
        new_value = new_value * 0.9 + base_value * 0.1

        self.last_values[address] = new_value
        return round(new_value, 2)

    def connect(self) -> None:
        self._connected = True

    def read_all(self, addresses: Iterable[str]) -> Dict[str, Any]:
        values = {}
        for address in addresses:
            category = self._categories.get(address, "temperature")
            base_value, variation = SIMULATION_PROFILES[category]
            values[address] = self._get_numeric_value(address, base_value, variation)
        return values

    def sample(self) -> Dict[str, float]:
        """One simulated value per configured channel, keyed by channel name."""
        raw = self.read_all(channel.address for channel in self.channels.values())
        return {name: raw[channel.address] for name, channel in self.channels.items()}

    def disconnect(self) -> None:
        self._connected = False

    def check_health(self) -> bool:
        # Dummy controller is always healthy
        return True
