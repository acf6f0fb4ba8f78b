"""Configuration objects and helpers for SlotWatcher."""

from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .client import API_BASE, DEFAULT_API_KEY_HEADER
from .errors import ConfigurationError
from .models import Location


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables."""

    api_base_url: str = Field(API_BASE)
    api_key: Optional[SecretStr] = Field(None)
    api_key_header: str = Field(DEFAULT_API_KEY_HEADER)
    store_ids: str = Field("", description="Comma separated 'id' or 'id:Name' entries.")
    zip_codes: str = Field("", description="Comma separated ZIP codes to discover stores around.")
    search_radius: int = Field(50, gt=0)
    poll_interval_seconds: float = Field(60.0, gt=0)
    cycle_timeout_seconds: float = Field(30.0, gt=0)
    request_timeout_seconds: float = Field(10.0, gt=0)
    max_concurrency: int = Field(4, ge=1)
    fetch_max_attempts: int = Field(2, ge=1)
    fetch_backoff_seconds: float = Field(0.5, ge=0)
    notify_max_attempts: int = Field(3, ge=1)
    notify_backoff_seconds: float = Field(1.0, ge=0)
    webhook_urls: str = Field("")
    slack_webhook: Optional[str] = Field(None)
    log_alerts: bool = Field(True)
    notify_unavailable: bool = Field(False)
    status_host: str = Field("0.0.0.0")
    status_port: int = Field(8080, ge=0, le=65535)
    healthy_intervals: int = Field(3, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="SLOTWATCH_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("slack_webhook", mode="before")
    @classmethod
    def blank_as_none(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def check_cycle_fits_interval(self) -> "Settings":
        if self.cycle_timeout_seconds > self.poll_interval_seconds:
            raise ValueError(
                "cycle_timeout_seconds must not exceed poll_interval_seconds")
        return self

    @property
    def webhook_url_list(self) -> List[str]:
        return _split_csv(self.webhook_urls)

    @property
    def zip_code_list(self) -> List[str]:
        return _split_csv(self.zip_codes)

    @property
    def health_window(self) -> dt.timedelta:
        """Age after which the last completed cycle counts as stale."""
        return dt.timedelta(seconds=self.poll_interval_seconds *
                            self.healthy_intervals)

    def configured_locations(self) -> List[Location]:
        """Parse ``store_ids`` into Locations."""
        locations: List[Location] = []
        seen = set()
        for entry in _split_csv(self.store_ids):
            store_id, _, name = entry.partition(":")
            store_id = store_id.strip()
            if not store_id:
                raise ConfigurationError(f"Invalid store entry: {entry!r}")
            if store_id in seen:
                continue
            seen.add(store_id)
            locations.append(
                Location(store_id=store_id,
                         name=name.strip() or f"Store {store_id}"))
        return locations


def merge_locations(*groups: List[Location]) -> List[Location]:
    """Concatenate location lists keeping the first entry per store id."""
    merged: List[Location] = []
    seen = set()
    for group in groups:
        for location in group:
            if location.store_id in seen:
                continue
            seen.add(location.store_id)
            merged.append(location)
    if not merged:
        raise ConfigurationError(
            "No locations configured; set SLOTWATCH_STORE_IDS or SLOTWATCH_ZIP_CODES")
    return merged


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


__all__ = ["Settings", "merge_locations"]
