"""Base class for PLC protocol clients."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator
import logging

logger = logging.getLogger(__name__)


class ProtocolClient(ABC):
    """Base class for all PLC protocol clients.

    A client performs exactly one round trip per call and never retries;
    retry policy belongs to the caller.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open a session to the controller. Raises ConnectError."""
        pass

    @abstractmethod
    def read_all(self, addresses: Iterable[str]) -> Dict[str, Any]:
        """Read every address in one go. Raises ReadError on a partial or malformed read."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the session. Safe to call when not connected."""
        pass

    @abstractmethod
    def check_health(self) -> bool:
        """Basic health check - can we talk to the controller?"""
        pass

    @contextmanager
    def session(self) -> Iterator["ProtocolClient"]:
        """Connect for the duration of the block, always disconnecting on exit."""
        self.connect()
        try:
            yield self
        finally:
            try:
                self.disconnect()
            except Exception as e:
                logger.warning(f"{self.__class__.__name__} disconnect failed: {e}")
