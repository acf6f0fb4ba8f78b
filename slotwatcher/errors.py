"""Exception hierarchy for SlotWatcher."""

from __future__ import annotations

from typing import Dict


class SlotWatcherError(Exception):
    """Base class for all SlotWatcher errors."""


class ConfigurationError(SlotWatcherError):
    """Raised when startup configuration is unusable."""


class FetchError(SlotWatcherError):
    """Raised when availability for a location could not be fetched."""

    transient = False

    def __init__(self, location_id: str, reason: str):
        super().__init__(f"{location_id}: {reason}")
        self.location_id = location_id
        self.reason = reason


class TransientFetchError(FetchError):
    """Timeouts, connection failures and 5xx replies; retried next cycle."""

    transient = True


class PermanentFetchError(FetchError):
    """4xx replies and malformed bodies; the location is skipped."""


class DeliveryRejected(SlotWatcherError):
    """A sink refused the alert outright; retrying will not help."""


class NotifyError(SlotWatcherError):
    """One or more sinks failed to deliver an alert after retries."""

    def __init__(self, location_id: str, failures: Dict[str, str],
                 outcomes: Dict[str, bool]):
        sinks = ", ".join(sorted(failures))
        super().__init__(f"delivery failed for {location_id} via {sinks}")
        self.location_id = location_id
        self.failures = failures
        self.outcomes = outcomes
