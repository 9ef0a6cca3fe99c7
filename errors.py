"""
Nest Trend Monitor - Error Types

Per-device failures (StoreUnavailable, MalformedReading, ActuationFailure)
are handled inside a poll cycle and never abort the batch. UpstreamFatal ends
the run; only main.py turns it into an exit code.
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for all monitor errors."""


class StoreUnavailable(MonitorError):
    """The sample history store could not be reached or rejected the operation."""


class MalformedReading(MonitorError, ValueError):
    """A device reading could not be normalized or failed validation."""


class ActuationFailure(MonitorError):
    """A remote thermostat command was rejected or could not be delivered."""

    def __init__(self, device_id: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"{device_id}: {reason}")
        self.device_id = device_id
        self.reason = reason
        self.status_code = status_code


class UpstreamFatal(MonitorError):
    """Credential, inventory or configuration failure; the run cannot continue."""
