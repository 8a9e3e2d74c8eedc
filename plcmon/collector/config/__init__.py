"""Collector configuration."""
