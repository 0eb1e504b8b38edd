"""Hourly weather-station telemetry sync."""

__version__ = "0.1.0"
