"""Siemens S7 protocol client built on python-snap7."""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging
import re

from snap7.client import Client
from snap7.type import Parameter
from snap7.util import get_bool, get_dint, get_dword, get_int, get_real, get_word

from plcmon.shared.errors import ConnectError, ReadError
from plcmon.collector.config.settings import PLCConfig
from .base import ProtocolClient

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(
    r"^DB(?P<db>\d+),(?P<kind>REAL|DINT|DWORD|INT|WORD|BYTE|X)(?P<offset>\d+)(?:\.(?P<bit>[0-7]))?$",
    re.IGNORECASE,
)

TYPE_SIZES = {
    "REAL": 4,
    "DINT": 4,
    "DWORD": 4,
    "INT": 2,
    "WORD": 2,
    "BYTE": 1,
    "X": 1,
}


@dataclass(frozen=True)
class S7Address:
    """A parsed data block address such as 'DB1,REAL24' or 'DB1,X2.3'."""
    db: int
    kind: str
    offset: int
    bit: Optional[int] = None

    @property
    def size(self) -> int:
        return TYPE_SIZES[self.kind]

    @property
    def end(self) -> int:
        return self.offset + self.size

    def decode(self, data: bytearray, base: int) -> Any:
        """Decode this address from a buffer that starts at byte `base` of the block."""
        index = self.offset - base
        if self.kind == "REAL":
            return get_real(data, index)
        if self.kind == "DINT":
            return get_dint(data, index)
        if self.kind == "DWORD":
            return get_dword(data, index)
        if self.kind == "INT":
            return get_int(data, index)
        if self.kind == "WORD":
            return get_word(data, index)
        if self.kind == "BYTE":
            return data[index]
        return get_bool(data, index, self.bit)


def parse_address(address: str) -> S7Address:
    """Parse a nodes7-style data block address.

    Raises:
        ValueError: If the address is not a supported DB address.
    """
    match = ADDRESS_PATTERN.match(address.strip())
    if not match:
        raise ValueError(f"Unsupported S7 address: {address}")

    kind = match.group("kind").upper()
    bit = match.group("bit")
    if kind == "X" and bit is None:
        raise ValueError(f"Bit address needs a bit number: {address}")
    if kind != "X" and bit is not None:
        raise ValueError(f"Only bit addresses take a bit number: {address}")

    return S7Address(
        db=int(match.group("db")),
        kind=kind,
        offset=int(match.group("offset")),
        bit=int(bit) if bit is not None else None,
    )


class S7Client(ProtocolClient):
    """Reads data block values from an S7-300/400/1200/1500 controller."""

    def __init__(self, config: PLCConfig, client_factory: Callable[[], Client] = Client):
        self.config = config
        self._client_factory = client_factory
        self._client: Optional[Client] = None

    def connect(self) -> None:
        if self._client is not None:
            return

        client = self._client_factory()
        timeout_ms = int(self.config.timeout * 1000)
        try:
            for param in (Parameter.PingTimeout, Parameter.SendTimeout, Parameter.RecvTimeout):
                client.set_param(param, timeout_ms)
            client.connect(self.config.host, self.config.rack, self.config.slot, self.config.port)
            if not client.get_connected():
                raise ConnectError(f"PLC at {self.config.host}:{self.config.port} did not accept the session")
        except ConnectError:
            client.destroy()
            raise
        except Exception as e:
            client.destroy()
            raise ConnectError(f"Failed to connect to PLC at {self.config.host}:{self.config.port}: {e}") from e

        self._client = client
        logger.debug(f"Connected to PLC at {self.config.host} (rack {self.config.rack}, slot {self.config.slot})")

    def read_all(self, addresses: Iterable[str]) -> Dict[str, Any]:
        if self._client is None:
            raise ReadError("Not connected to PLC")

        blocks: Dict[int, List[tuple]] = defaultdict(list)
        for address in addresses:
            try:
                parsed = parse_address(address)
            except ValueError as e:
                raise ReadError(str(e)) from e
            blocks[parsed.db].append((address, parsed))

        values = {}
        for db, items in blocks.items():
            start = min(parsed.offset for _, parsed in items)
            size = max(parsed.end for _, parsed in items) - start
            try:
                data = self._client.db_read(db, start, size)
            except Exception as e:
                raise ReadError(f"Failed to read DB{db} [{start}:{start + size}]: {e}") from e

            if data is None or len(data) < size:
                got = 0 if data is None else len(data)
                raise ReadError(f"Short read from DB{db}: expected {size} bytes, got {got}")

            for address, parsed in items:
                try:
                    values[address] = parsed.decode(data, start)
                except Exception as e:
                    raise ReadError(f"Failed to decode {address}: {e}") from e

        logger.debug(f"Read {len(values)} values from {len(blocks)} data block(s)")
        return values

    def disconnect(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            client.disconnect()
        finally:
            client.destroy()

    def check_health(self) -> bool:
        """Check if the PLC accepts a session."""
        try:
            with self.session():
                return True
        except ConnectError as e:
            logger.error(f"PLC health check failed: {e}")
            return False
