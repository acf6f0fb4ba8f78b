"""HTTP client for the pharmacy vaccine availability API."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests

from .errors import PermanentFetchError, TransientFetchError
from .models import AvailabilitySnapshot, Location, utcnow
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

API_BASE = "https://www.riteaid.com/services/ext/v2/"
SLOTS_ENDPOINT = "vaccine/checkSlots"
STORES_ENDPOINT = "stores/getStores"
DEFAULT_API_KEY_HEADER = "X-Api-Key"
VACCINE_STORE_ATTRIBUTE = "PREF-112"
DOSE_SLOTS = ("1", "2")


class UpstreamClient:
    """Fetches per-store slot availability and classifies failures."""

    def __init__(self,
                 base_url: str = API_BASE,
                 api_key: str | None = None,
                 api_key_header: str = DEFAULT_API_KEY_HEADER,
                 timeout: float = 10.0,
                 retry_policy: RetryPolicy | None = None,
                 session: requests.Session | None = None,
                 clock: Callable[[], dt.datetime] = utcnow):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=1, retry_on=(TransientFetchError,))
        self.clock = clock
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": "SlotWatcher/1.0",
            "Accept": "application/json",
        })
        if api_key:
            self.session.headers[api_key_header] = api_key
        self._store_cache: Dict[str, List[Location]] = {}
        self._cache_lock = threading.Lock()

    def close(self) -> None:
        self.session.close()

    def fetch(self,
              location: Location,
              stop_event: Optional[threading.Event] = None
              ) -> AvailabilitySnapshot:
        """Fetch the current availability for ``location``.

        Raises TransientFetchError once the retry policy is exhausted, or
        PermanentFetchError immediately.
        """
        return self.retry_policy.call(self._fetch_once,
                                      location,
                                      stop_event=stop_event)

    def _fetch_once(self, location: Location) -> AvailabilitySnapshot:
        logger.debug("Checking slots for store %s", location.store_id)
        payload = self._get_json(location.store_id, SLOTS_ENDPOINT,
                                 {"storeNumber": location.store_id})
        try:
            slots = parse_slots(payload)
        except ValueError as exc:
            raise PermanentFetchError(location.store_id, str(exc)) from exc

        open_slots = sum(1 for is_open in slots.values() if is_open)
        # Any slot beyond the two doses means an unexpected schedule shape.
        available = (len(slots) == len(DOSE_SLOTS)
                     and all(slots.get(dose, False) for dose in DOSE_SLOTS))
        return AvailabilitySnapshot(
            location_id=location.store_id,
            available=available,
            observed_at=self.clock(),
            slot_count=open_slots,
        )

    def discover_locations(self, zip_code: str,
                           radius: int = 50) -> List[Location]:
        """List vaccine-offering stores near ``zip_code``.

        Results are cached per ZIP code for the lifetime of the client.
        """
        with self._cache_lock:
            cached = self._store_cache.get(zip_code)
        if cached is not None:
            logger.debug("Store list for %s served from cache", zip_code)
            return list(cached)

        payload = self._get_json(
            zip_code,
            STORES_ENDPOINT,
            {
                "address": zip_code,
                "attrFilter": VACCINE_STORE_ATTRIBUTE,
                "fetchMechanismVersion": "2",
                "radius": str(radius),
            },
        )
        try:
            locations = parse_stores(payload, zip_code=zip_code, radius=radius)
        except ValueError as exc:
            raise PermanentFetchError(zip_code, str(exc)) from exc

        logger.info("Discovered %d stores within %d miles of %s",
                    len(locations), radius, zip_code)
        with self._cache_lock:
            self._store_cache[zip_code] = locations
        return list(locations)

    def _get_json(self, subject: str, endpoint: str,
                  params: Dict[str, str]) -> object:
        try:
            response = self.session.get(
                urljoin(self.base_url, endpoint),
                params=params,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise TransientFetchError(subject, f"timed out: {exc}") from exc
        except requests.RequestException as exc:
            raise TransientFetchError(subject, f"request failed: {exc}") from exc

        status = response.status_code
        if status >= 500 or status == 429:
            raise TransientFetchError(subject, f"upstream returned {status}")
        if status >= 400:
            raise PermanentFetchError(subject, f"upstream returned {status}")

        try:
            return response.json()
        except ValueError as exc:
            raise PermanentFetchError(subject,
                                      f"malformed JSON body: {exc}") from exc


def _unwrap_data(payload: object) -> dict:
    if not isinstance(payload, dict):
        raise ValueError(f"Unexpected response payload: {payload!r}")
    status = payload.get("Status")
    if status is not None and status != "SUCCESS":
        message = payload.get("ErrMsg") or payload.get("ErrCde") or status
        raise ValueError(f"Upstream reported failure: {message}")
    data = payload.get("Data")
    if not isinstance(data, dict):
        raise ValueError(f"Response is missing a Data object: {payload!r}")
    return data


def parse_slots(payload: object) -> Dict[str, bool]:
    """Extract the dose-slot flags from a checkSlots response."""
    slots = _unwrap_data(payload).get("slots")
    if not isinstance(slots, dict):
        raise ValueError("Response is missing the slots mapping")
    for key, value in slots.items():
        if not isinstance(value, bool):
            raise ValueError(f"Slot {key!r} has non-boolean value {value!r}")
    return dict(slots)


def parse_stores(payload: object, zip_code: str,
                 radius: int) -> List[Location]:
    """Build Locations from a getStores response."""
    stores = _unwrap_data(payload).get("stores")
    if not isinstance(stores, list):
        raise ValueError("Response is missing the stores list")

    locations: List[Location] = []
    for row in stores:
        if not isinstance(row, dict) or row.get("storeNumber") is None:
            raise ValueError(f"Store entry without storeNumber: {row!r}")
        store_id = str(row["storeNumber"])
        address = str(row.get("address") or "").strip()
        locations.append(
            Location(
                store_id=store_id,
                name=address or f"Store {store_id}",
                zip_code=str(row.get("zipcode") or zip_code),
                radius=radius,
                address=address,
                phone=str(row.get("fullPhone") or ""),
            ))
    return locations


__all__ = ["UpstreamClient", "parse_slots", "parse_stores"]
