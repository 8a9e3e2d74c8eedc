"""PLC data collection and history service."""

__version__ = "0.1.0"
