import datetime as dt

import pytest
from pydantic import ValidationError

from slotwatcher.config import Settings, merge_locations
from slotwatcher.errors import ConfigurationError
from slotwatcher.models import Location


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in [
            "SLOTWATCH_STORE_IDS",
            "SLOTWATCH_ZIP_CODES",
            "SLOTWATCH_WEBHOOK_URLS",
            "SLOTWATCH_SLACK_WEBHOOK",
            "SLOTWATCH_POLL_INTERVAL_SECONDS",
            "SLOTWATCH_CYCLE_TIMEOUT_SECONDS",
            "SLOTWATCH_API_KEY",
            "SLOTWATCH_MAX_CONCURRENCY",
    ]:
        monkeypatch.delenv(name, raising=False)


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SLOTWATCH_STORE_IDS", "42:Main St, 7 ,42")
    monkeypatch.setenv("SLOTWATCH_WEBHOOK_URLS", "https://a.example.com,https://b.example.com")
    monkeypatch.setenv("SLOTWATCH_API_KEY", "secret")
    monkeypatch.setenv("SLOTWATCH_POLL_INTERVAL_SECONDS", "30")
    monkeypatch.setenv("SLOTWATCH_CYCLE_TIMEOUT_SECONDS", "20")
    monkeypatch.setenv("SLOTWATCH_SLACK_WEBHOOK", "  ")

    settings = Settings()

    assert settings.configured_locations() == [
        Location(store_id="42", name="Main St"),
        Location(store_id="7", name="Store 7"),
    ]
    assert settings.webhook_url_list == ["https://a.example.com", "https://b.example.com"]
    assert settings.api_key.get_secret_value() == "secret"
    assert settings.slack_webhook is None
    assert settings.health_window == dt.timedelta(seconds=90)


def test_settings_read_dotenv_file(tmp_path):
    (tmp_path / ".env").write_text("SLOTWATCH_ZIP_CODES=19103, 19104\n", encoding="utf-8")

    settings = Settings()

    assert settings.zip_code_list == ["19103", "19104"]


def test_cycle_timeout_must_fit_interval(monkeypatch):
    monkeypatch.setenv("SLOTWATCH_POLL_INTERVAL_SECONDS", "10")
    monkeypatch.setenv("SLOTWATCH_CYCLE_TIMEOUT_SECONDS", "20")

    with pytest.raises(ValidationError):
        Settings()


def test_concurrency_must_be_positive(monkeypatch):
    monkeypatch.setenv("SLOTWATCH_MAX_CONCURRENCY", "0")

    with pytest.raises(ValidationError):
        Settings()


def test_blank_store_id_is_rejected(monkeypatch):
    monkeypatch.setenv("SLOTWATCH_STORE_IDS", ":Nameless")

    with pytest.raises(ConfigurationError):
        Settings().configured_locations()


def test_merge_locations_deduplicates_and_requires_one():
    configured = [Location(store_id="42", name="Main St")]
    discovered = [
        Location(store_id="42", name="100 Main St"),
        Location(store_id="7", name="200 Oak Ave"),
    ]

    merged = merge_locations(configured, discovered)

    assert [loc.name for loc in merged] == ["Main St", "200 Oak Ave"]
    with pytest.raises(ConfigurationError):
        merge_locations([], [])
