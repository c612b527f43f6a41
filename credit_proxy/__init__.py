"""Metering reverse proxy enforcing a monthly AI credit cap."""

__version__ = "0.1.0"
