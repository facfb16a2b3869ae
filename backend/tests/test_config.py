from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.core.config import Settings


def test_settings_parse_comma_separated_values(test_settings):
    assert test_settings.request_retry_backoff_schedule == (0.5, 1.5)
    assert test_settings.event_details_functions == ["get-event-details", "get-event-info"]
    assert test_settings.display_zone.key == "UTC"


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("EVENT_DETAILS_FUNCTIONS", "get-event-info, get-details")
    monkeypatch.setenv("TICKET_CACHE_TTL_SECONDS", "30")
    monkeypatch.setenv("DISPLAY_TIMEZONE", "Europe/Berlin")

    settings = Settings()

    assert settings.event_details_functions == ["get-event-info", "get-details"]
    assert settings.ticket_cache_ttl_seconds == 30
    assert settings.display_zone.key == "Europe/Berlin"


@pytest.mark.parametrize(
    "overrides",
    [
        {"display_timezone": "Mars/Olympus"},
        {"request_retry_backoff_seconds": "1,abc"},
        {"request_retry_backoff_seconds": "-1"},
        {"holdings_page_size": 500},
        {"metadata_concurrency": 0},
        {"request_retry_max_delay_seconds": -1},
    ],
)
def test_settings_reject_invalid_values(overrides):
    with pytest.raises(ValidationError):
        Settings(**overrides)


def test_retry_wait_is_bounded_by_default(monkeypatch):
    monkeypatch.delenv("REQUEST_RETRY_MAX_DELAY_SECONDS", raising=False)
    assert Settings().request_retry_max_delay_seconds == 10.0
