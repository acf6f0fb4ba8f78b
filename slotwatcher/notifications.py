"""Alert rendering and delivery to external channels."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

import requests

from .errors import DeliveryRejected, NotifyError
from .models import AlertMessage, Transition
from .retry import RetryPolicy

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("slotwatcher.alerts")


class Sink(Protocol):
    """Protocol defining the sink contract."""

    name: str

    def send(self, message: AlertMessage) -> None:
        ...


@dataclass
class LogSink:
    """Write alerts as log lines."""

    name: str = "log"

    def send(self, message: AlertMessage) -> None:
        alert_logger.warning("%s | %s", message.title, message.text)


@dataclass
class WebhookSink:
    """POST the structured alert payload to an arbitrary webhook."""

    url: str
    timeout: float = 10.0
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"webhook:{self.url}"

    def send(self, message: AlertMessage) -> None:
        response = requests.post(self.url,
                                 json=message.payload,
                                 timeout=self.timeout)
        _raise_for_delivery(response, self.name)


@dataclass
class SlackSink:
    """Send alerts to Slack via Incoming Webhook."""

    webhook_url: str
    timeout: float = 10.0
    name: str = "slack"

    def send(self, message: AlertMessage) -> None:
        response = requests.post(
            self.webhook_url,
            json={"text": f"{message.title}\n{message.text}"},
            timeout=self.timeout,
        )
        _raise_for_delivery(response, self.name)


def _raise_for_delivery(response: requests.Response, sink_name: str) -> None:
    if 400 <= response.status_code < 500 and response.status_code != 429:
        raise DeliveryRejected(
            f"{sink_name} rejected alert with status {response.status_code}")
    response.raise_for_status()


def default_delivery_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3,
                       backoff_seconds=1.0,
                       retry_on=(requests.RequestException,))


def render_alert(transition: Transition) -> AlertMessage:
    """Render a transition into a human and machine readable alert."""
    location = transition.location
    current = transition.current
    if transition.opened:
        title = f"Vaccine slots open at {location.name}"
    else:
        title = f"Vaccine slots gone at {location.name}"

    lines = [f"Store: {location.store_id}"]
    if location.address and location.address != location.name:
        lines.append(f"Address: {location.address}")
    if location.phone:
        lines.append(f"Phone: {location.phone}")
    if current.slot_count is not None:
        lines.append(f"Open slots: {current.slot_count}")
    lines.append(f"Observed: {current.observed_at.isoformat()}")

    return AlertMessage(
        title=title,
        text="\n".join(lines),
        payload={
            "location": location.store_id,
            "previous": transition.previous.available,
            "current": current.available,
            "timestamp": current.observed_at.isoformat(),
        },
    )


@dataclass
class Notifier:
    """Fan-out of alerts to every sink with per-sink bounded retry."""

    sinks: List[Sink]
    retry_policy: RetryPolicy = field(default_factory=default_delivery_policy)
    notify_unavailable: bool = False

    def should_dispatch(self, transition: Transition) -> bool:
        return transition.opened or self.notify_unavailable

    def notify(self,
               transition: Transition,
               stop_event: Optional[threading.Event] = None) -> Dict[str, bool]:
        """Deliver ``transition`` to all sinks.

        Returns the per-sink outcome. Raises NotifyError after every sink was
        attempted if any of them failed.
        """
        location_id = transition.location.store_id
        if not self.should_dispatch(transition):
            logger.info("Slots closed at %s; external alert suppressed",
                        location_id)
            return {}

        message = render_alert(transition)
        outcomes: Dict[str, bool] = {}
        failures: Dict[str, str] = {}
        for sink in self.sinks:
            try:
                self.retry_policy.call(sink.send, message, stop_event=stop_event)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to deliver alert for %s via %s: %s",
                             location_id, sink.name, exc)
                outcomes[sink.name] = False
                failures[sink.name] = str(exc)
            else:
                outcomes[sink.name] = True

        if failures:
            raise NotifyError(location_id, failures, outcomes)
        logger.info("Delivered alert for %s to %d sink(s)", location_id,
                    len(outcomes))
        return outcomes


def build_sinks(webhook_urls: List[str],
                slack_webhook: str | None = None,
                log_alerts: bool = True,
                timeout: float = 10.0) -> List[Sink]:
    """Construct sinks from configuration values."""
    sinks: List[Sink] = []
    if log_alerts:
        sinks.append(LogSink())
    for url in webhook_urls:
        sinks.append(WebhookSink(url=url, timeout=timeout))
    if slack_webhook:
        sinks.append(SlackSink(webhook_url=slack_webhook, timeout=timeout))
    return sinks


__all__ = [
    "LogSink",
    "Notifier",
    "SlackSink",
    "Sink",
    "WebhookSink",
    "build_sinks",
    "render_alert",
]
