from __future__ import annotations

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
sys.path.insert(0, str(Path(__file__).resolve().parent))

import pytest
from loguru import logger

from app.core.config import Settings
from factories import FALLBACK_IMAGE, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def log_messages():
    messages: list[tuple[str, str]] = []
    handler_id = logger.add(
        lambda message: messages.append(
            (message.record["level"].name, message.record["message"])
        ),
        level="DEBUG",
    )
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def test_settings(monkeypatch) -> Settings:
    settings = Settings(
        hiro_api_base_url="https://hiro.test",
        holdings_page_size=5,
        request_retry_backoff_seconds="0.5,1.5",
        fallback_image_url=FALLBACK_IMAGE,
        metadata_cache_ttl_seconds=0,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings
