"""Exceptions raised while collecting PLC data."""


class CollectorError(Exception):
    """Base class for collection cycle failures."""

    stage = "cycle"


class ConnectError(CollectorError):
    """Raised when the PLC endpoint is unreachable or refuses the session."""

    stage = "connect"


class ReadError(CollectorError):
    """Raised when a PLC read is malformed or incomplete."""

    stage = "read"


class WriteError(CollectorError):
    """Raised when a reading could not be persisted."""

    stage = "write"


class BusyError(CollectorError):
    """Raised when a collection cycle is already in flight."""

    stage = "guard"
