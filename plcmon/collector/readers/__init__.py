"""PLC protocol clients for data collection."""

from .base import ProtocolClient
from .s7 import S7Client, S7Address, parse_address
from .dummy import DummyClient


def create_client(config) -> ProtocolClient:
    """Create the protocol client named by config.plc.driver.

    Raises:
        ValueError: For an unknown driver or an invalid channel address.
    """
    driver = config.plc.driver
    if driver == "dummy":
        return DummyClient(config.channels)
    if driver == "s7":
        for channel in config.channels.values():
            parse_address(channel.address)
        return S7Client(config.plc)
    raise ValueError(f"Unsupported PLC driver: {driver}")


__all__ = [
    "ProtocolClient",
    "S7Client",
    "S7Address",
    "parse_address",
    "DummyClient",
    "create_client",
]
