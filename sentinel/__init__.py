"""Periodic endpoint probing with transition-based alerting."""

__version__ = "0.1.0"
