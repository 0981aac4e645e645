"""Rename tag values of time-series points in InfluxDB."""

__version__ = "0.1.0"
