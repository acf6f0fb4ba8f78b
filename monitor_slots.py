"""CLI entrypoint for the SlotWatcher agent."""

from __future__ import annotations

import argparse
import logging
import signal
import sys

import requests
from pydantic import ValidationError

from slotwatcher.client import UpstreamClient
from slotwatcher.config import Settings, merge_locations
from slotwatcher.errors import (ConfigurationError, FetchError,
                                TransientFetchError)
from slotwatcher.notifications import Notifier, build_sinks
from slotwatcher.retry import RetryPolicy
from slotwatcher.scheduler import Scheduler
from slotwatcher.status import StatusServer, create_app
from slotwatcher.store import AvailabilityStore

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SlotWatcher vaccine availability monitor")
    parser.add_argument(
        "--once",
        action="store_true",
        help="execute one monitoring cycle and exit",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="detect changes without delivering notifications",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="status server port (overrides SLOTWATCH_STATUS_PORT)",
    )
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    return parser


def build_client(settings: Settings) -> UpstreamClient:
    return UpstreamClient(
        base_url=settings.api_base_url,
        api_key=settings.api_key.get_secret_value() if settings.api_key else None,
        api_key_header=settings.api_key_header,
        timeout=settings.request_timeout_seconds,
        retry_policy=RetryPolicy(
            max_attempts=settings.fetch_max_attempts,
            backoff_seconds=settings.fetch_backoff_seconds,
            retry_on=(TransientFetchError,),
        ),
    )


def build_notifier(settings: Settings) -> Notifier:
    sinks = build_sinks(
        webhook_urls=settings.webhook_url_list,
        slack_webhook=settings.slack_webhook,
        log_alerts=settings.log_alerts,
        timeout=settings.request_timeout_seconds,
    )
    if not sinks:
        logger.warning("No notification sinks configured; alerts will only be counted")
    return Notifier(
        sinks=sinks,
        retry_policy=RetryPolicy(
            max_attempts=settings.notify_max_attempts,
            backoff_seconds=settings.notify_backoff_seconds,
            retry_on=(requests.RequestException,),
        ),
        notify_unavailable=settings.notify_unavailable,
    )


def resolve_locations(settings: Settings, client: UpstreamClient):
    discovered = []
    for zip_code in settings.zip_code_list:
        discovered.extend(
            client.discover_locations(zip_code, radius=settings.search_radius))
    return merge_locations(settings.configured_locations(), discovered)


def install_signal_handlers(scheduler: Scheduler) -> None:

    def _shutdown(signum, frame):
        logger.info("Received signal %s; stopping", signal.Signals(signum).name)
        scheduler.request_shutdown()

    def _reload(signum, frame):
        scheduler.reset_permanent_failures()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _reload)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = Settings()
    except ValidationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    client = build_client(settings)
    try:
        locations = resolve_locations(settings, client)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        client.close()
        return 2
    except FetchError as exc:
        logger.error("Store discovery failed: %s", exc)
        client.close()
        return 1

    logger.info("Watching %d location(s): %s", len(locations),
                ", ".join(location.store_id for location in locations))
    store = AvailabilityStore(locations)
    scheduler = Scheduler(
        client=client,
        store=store,
        notifier=build_notifier(settings),
        locations=locations,
        interval_seconds=settings.poll_interval_seconds,
        cycle_timeout_seconds=settings.cycle_timeout_seconds,
        max_concurrency=settings.max_concurrency,
        dry_run=args.dry_run,
    )

    if args.once:
        try:
            scheduler.run_cycle()
        finally:
            scheduler.close()
            client.close()
        return 0

    port = args.port if args.port is not None else settings.status_port
    server = StatusServer(create_app(store, settings.health_window),
                          host=settings.status_host,
                          port=port)
    install_signal_handlers(scheduler)
    server.start()
    try:
        scheduler.run_forever()
    finally:
        server.stop()
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
