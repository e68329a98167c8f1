"""Bright Ears realtime layer: TTL read cache and booking event streams."""

__version__ = "1.0.0"
