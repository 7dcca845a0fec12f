"""Reporting over stored ping results."""

from .status import StatusService

__all__ = ["StatusService"]
