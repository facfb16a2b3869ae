from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_FALLBACK_IMAGE = (
    "https://images.unsplash.com/photo-1540575467063-178a50c2df87?w=800&q=80"
)


def _split_csv(value: str) -> list[str]:
    return [item for item in (part.strip() for part in value.split(",")) if item]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    hiro_api_base_url: AnyUrl = Field(
        default="https://api.testnet.hiro.so",
        description="Base URL for the Hiro Stacks API (indexer and contract reads)",
    )
    hiro_api_key: str | None = Field(
        default=None,
        description="Optional Hiro API key sent as the x-api-key header",
    )
    holdings_page_size: int = Field(
        default=200,
        description="Number of NFT holdings requested per indexer page",
        ge=1,
        le=200,
    )
    holdings_max_pages: int = Field(
        default=1,
        description="Upper bound on indexer pages fetched for a single address",
        ge=1,
    )
    indexer_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to each holdings request",
        gt=0,
    )
    contract_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to each read-only contract call",
        gt=0,
    )
    request_retry_attempts: int = Field(
        default=3,
        description="Attempts made for a request that is rate limited or fails transiently",
        ge=1,
    )
    request_retry_max_delay_seconds: float = Field(
        default=10.0,
        description="Upper bound on any single retry wait, including a server Retry-After",
        ge=0,
    )
    request_retry_backoff_seconds: list[float] | tuple[float, ...] | str = Field(
        default_factory=lambda: [1.0, 2.0, 4.0],
        description="Comma-separated list or array of backoff delays (seconds) between request retries",
    )
    event_details_functions: list[str] | str = Field(
        default_factory=lambda: ["get-event-details", "get-event-info"],
        description="Read-only functions probed, in order, for a contract's event details",
    )
    metadata_concurrency: int = Field(
        default=4,
        description="Number of contracts whose metadata is resolved concurrently",
        ge=1,
    )
    ticket_cache_ttl_seconds: float = Field(
        default=120.0,
        description="How long a wallet's ticket list is served from memory",
        ge=0,
    )
    metadata_cache_ttl_seconds: float = Field(
        default=120.0,
        description="How long a contract's resolved event metadata is reused",
        ge=0,
    )
    fallback_image_url: str = Field(
        default=DEFAULT_FALLBACK_IMAGE,
        description="Placeholder image used when a contract exposes none",
    )
    display_timezone: str = Field(
        default="UTC",
        description="IANA zone used when formatting event dates and times",
    )

    @field_validator("request_retry_backoff_seconds", mode="before")
    @classmethod
    def _parse_retry_backoff(cls, value: Any) -> list[float]:
        if value in (None, "", []):
            return [1.0, 2.0, 4.0]
        if isinstance(value, str):
            value = _split_csv(value)
            if not value:
                raise ValueError("REQUEST_RETRY_BACKOFF_SECONDS must contain at least one value")
        if isinstance(value, (list, tuple)):
            backoff: list[float] = []
            for item in value:
                try:
                    delay = float(item)
                except (TypeError, ValueError) as exc:
                    raise ValueError("REQUEST_RETRY_BACKOFF_SECONDS entries must be numeric") from exc
                if delay < 0:
                    raise ValueError("REQUEST_RETRY_BACKOFF_SECONDS entries must not be negative")
                backoff.append(delay)
            if not backoff:
                raise ValueError("REQUEST_RETRY_BACKOFF_SECONDS must contain at least one value")
            return backoff
        raise ValueError(
            "REQUEST_RETRY_BACKOFF_SECONDS must be provided as a comma-separated string or list of numbers"
        )

    @field_validator("event_details_functions", mode="before")
    @classmethod
    def _parse_event_functions(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return ["get-event-details", "get-event-info"]
        if isinstance(value, str):
            return _split_csv(value)
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if str(item).strip()]
        raise ValueError(
            "EVENT_DETAILS_FUNCTIONS must be provided as a list or comma-separated string"
        )

    @field_validator("display_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"display_timezone '{value}' is not a known IANA zone") from exc
        return value

    @property
    def request_retry_backoff_schedule(self) -> tuple[float, ...]:
        sequence = tuple(float(value) for value in self.request_retry_backoff_seconds)
        if not sequence:
            return (1.0,)
        return sequence

    @property
    def display_zone(self) -> ZoneInfo:
        return ZoneInfo(self.display_timezone)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
