"""SlotWatcher package initialization."""

from .client import UpstreamClient
from .diff import diff_availability, diff_cycle
from .errors import (
    ConfigurationError,
    FetchError,
    NotifyError,
    PermanentFetchError,
    TransientFetchError,
)
from .models import (
    AlertMessage,
    AvailabilitySnapshot,
    CycleResult,
    Location,
    Transition,
)
from .notifications import Notifier
from .retry import RetryPolicy
from .scheduler import Scheduler, SchedulerState
from .store import AvailabilityStore

__all__ = [
    "AlertMessage",
    "AvailabilitySnapshot",
    "AvailabilityStore",
    "ConfigurationError",
    "CycleResult",
    "FetchError",
    "Location",
    "Notifier",
    "NotifyError",
    "PermanentFetchError",
    "RetryPolicy",
    "Scheduler",
    "SchedulerState",
    "Transition",
    "TransientFetchError",
    "UpstreamClient",
    "diff_availability",
    "diff_cycle",
]
