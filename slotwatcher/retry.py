"""Bounded retry policies shared by the upstream client and the notifier."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from tenacity import (Retrying, before_sleep_log, retry_if_exception_type,
                      stop_after_attempt, stop_when_event_set,
                      wait_exponential)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Maximum attempts plus an exponential backoff schedule.

    ``backoff_seconds`` is the wait before the second attempt; each further
    wait doubles, capped at ``max_backoff_seconds``. When a stop event is
    supplied the backoff sleeps wake up as soon as it is set and no further
    attempts are made.
    """

    max_attempts: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must not be negative")

    def retrying(self, stop_event: Optional[threading.Event] = None) -> Retrying:
        stop = stop_after_attempt(self.max_attempts)
        sleep: Callable[[float], Any] = time.sleep
        if stop_event is not None:
            stop = stop | stop_when_event_set(stop_event)
            sleep = stop_event.wait
        return Retrying(
            stop=stop,
            wait=wait_exponential(multiplier=self.backoff_seconds,
                                  max=self.max_backoff_seconds),
            retry=retry_if_exception_type(self.retry_on),
            sleep=sleep,
            reraise=True,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

    def call(self,
             fn: Callable[..., T],
             *args: Any,
             stop_event: Optional[threading.Event] = None,
             **kwargs: Any) -> T:
        """Invoke ``fn`` under this policy, re-raising the last error."""
        return self.retrying(stop_event)(fn, *args, **kwargs)


__all__ = ["RetryPolicy"]
