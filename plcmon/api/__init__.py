"""HTTP interface for the collector and history queries."""

from .server import create_app

__all__ = ["create_app"]
