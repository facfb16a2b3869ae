"""Resolution of per-contract event metadata from read-only contract calls.

Deployed ticket contracts disagree on field names (``name`` vs ``event-name``),
wrap values in Clarity type tags, and sometimes expose no details at all. The
helpers here probe ordered candidate keys and fall back field by field so that
``resolve`` always yields a complete :class:`EventMetadata`.
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Sequence
from datetime import datetime, timezone, tzinfo
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Protocol

import httpx
from dateutil import parser as date_parser
from loguru import logger

from app.core.config import settings
from app.domain import EventMetadata

from .client import ContractCallError


DEFAULT_EVENT_NAME = "Event"
DEFAULT_DESCRIPTION = "Event ticket NFT"
DEFAULT_CATEGORY = "General"
DEFAULT_PRICE = "0"
TBA = "TBA"

MICRO_UNITS = Decimal(1_000_000)
MICRO_STEP = Decimal("0.000001")
_MILLISECOND_THRESHOLD = 9_999_999_999

EVENT_NAME_KEYS = ("name", "event-name", "eventName")
EVENT_DATE_KEYS = ("event-date", "date", "eventDate")
VENUE_KEYS = ("venue-address", "venue", "location", "venueAddress", "place", "address")
IMAGE_KEYS = ("image-uri", "image", "imageUri", "image-url", "img")
DESCRIPTION_KEYS = ("description", "desc")
CATEGORY_KEYS = ("category", "type", "ticketType")
PRICE_KEYS = ("price", "ticket-price", "ticketPrice")

_ENVELOPE_TYPES = {"ok", "response", "some"}
_EMPTY_TYPES = {"err", "none"}
_NAME_SEPARATORS = re.compile(r"[-_\s]+")
_NUMERIC_TOKEN = re.compile(r"^\d+(\.\d+)?$")
_DIGITS = re.compile(r"[0-9]+")
# Distinct in year, month and day so partial strings can be detected.
_DISTINCT_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


class ReadOnlyCaller(Protocol):
    async def call_read_only(
        self,
        contract_address: str,
        contract_name: str,
        function_name: str,
        arguments: Sequence[str] = (),
    ) -> Any: ...


def _is_tagged(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("type"), str) and "value" in value


def unwrap(value: Any) -> Any:
    """Strip Clarity type tags, returning the plain python value."""

    while _is_tagged(value):
        tag = value["type"]
        if tag in _EMPTY_TYPES:
            return None
        value = value["value"]
        if tag in ("uint", "int") and isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                return value
    return value


def _is_envelope(value: Any) -> bool:
    if not _is_tagged(value):
        return False
    tag = value["type"]
    if tag in _ENVELOPE_TYPES:
        return True
    # cvToJSON style: {"type": "(response (tuple ...) ...)", "success": true, "value": ...}
    return tag.startswith(("(response", "(optional")) and value.get("success", True) is not False


def _details_body(raw: Any) -> dict[str, Any] | None:
    details = raw
    while _is_envelope(details):
        details = details["value"]
    if _is_tagged(details):
        if not details["type"].startswith(("tuple", "(tuple")):
            return None
        details = details["value"]
    return details if isinstance(details, dict) else None


def _first_present(details: dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = unwrap(details.get(key))
        if value is None or value == "":
            continue
        return value
    return None


def derive_event_name(contract_name: str) -> str:
    words = [
        part[0].upper() + part[1:]
        for part in _NAME_SEPARATORS.split(contract_name or "")
        if part and not _NUMERIC_TOKEN.match(part)
    ]
    return " ".join(words) or DEFAULT_EVENT_NAME


def format_price(price: Any) -> str:
    """Render a micro-unit integer price as a trimmed decimal string."""

    try:
        micro = Decimal(str(price).strip()).to_integral_value(rounding=ROUND_DOWN)
        if not micro.is_finite():
            return DEFAULT_PRICE
        amount = (micro / MICRO_UNITS).quantize(MICRO_STEP)
    except (InvalidOperation, ValueError):
        return DEFAULT_PRICE
    text = f"{amount:f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _parse_complete_date(text: str) -> datetime | None:
    """Parse free text only when it names a full calendar date."""

    try:
        first, second = (
            date_parser.parse(text, default=default) for default in _DISTINCT_DEFAULTS
        )
    except (ValueError, OverflowError):
        return None
    return first if first == second else None


def parse_event_date(value: Any) -> datetime | None:
    """Parse an ISO-ish string or unix timestamp into an aware datetime."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _DIGITS.fullmatch(text):
            try:
                value = int(text)
            except ValueError:
                return None
        else:
            try:
                parsed = date_parser.isoparse(text)
            except (ValueError, OverflowError):
                parsed = _parse_complete_date(text)
                if parsed is None:
                    return None
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > _MILLISECOND_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def format_event_time(value: Any, zone: tzinfo) -> str:
    parsed = parse_event_date(value)
    if parsed is None:
        return TBA
    return parsed.astimezone(zone).strftime("%I:%M %p")


def fallback_metadata(contract_name: str, *, image: str) -> EventMetadata:
    return EventMetadata(
        event_name=derive_event_name(contract_name),
        event_date=None,
        event_time=TBA,
        venue=None,
        image=image,
        description=DEFAULT_DESCRIPTION,
        category=DEFAULT_CATEGORY,
        price=DEFAULT_PRICE,
        price_formatted=DEFAULT_PRICE,
    )


def normalize_event_details(
    raw: Any,
    contract_name: str,
    *,
    fallback_image: str,
    zone: tzinfo,
) -> EventMetadata:
    """Build metadata from a decoded details payload, defaulting each missing field."""

    fallback = fallback_metadata(contract_name, image=fallback_image)
    details = _details_body(raw)
    if details is None:
        return fallback

    event_name = _first_present(details, EVENT_NAME_KEYS)
    event_date = _first_present(details, EVENT_DATE_KEYS)
    venue = _first_present(details, VENUE_KEYS)
    image = _first_present(details, IMAGE_KEYS)
    description = _first_present(details, DESCRIPTION_KEYS)
    category = _first_present(details, CATEGORY_KEYS)
    price = _first_present(details, PRICE_KEYS)

    price_text = str(price) if price is not None else DEFAULT_PRICE
    return EventMetadata(
        event_name=str(event_name) if event_name is not None else fallback.event_name,
        event_date=event_date,
        event_time=format_event_time(event_date, zone),
        venue=str(venue) if venue is not None else None,
        image=str(image) if image is not None else fallback.image,
        description=str(description) if description is not None else fallback.description,
        category=str(category) if category is not None else fallback.category,
        price=price_text,
        price_formatted=format_price(price_text),
    )


class MetadataResolver:
    """Resolves, and briefly memoizes, event metadata per contract."""

    def __init__(
        self,
        caller: ReadOnlyCaller,
        *,
        functions: Sequence[str] | None = None,
        fallback_image: str | None = None,
        zone: tzinfo | None = None,
        cache_ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._caller = caller
        self.functions = tuple(functions or settings.event_details_functions)
        self.fallback_image = fallback_image or settings.fallback_image_url
        self.zone = zone or settings.display_zone
        self.cache_ttl = settings.metadata_cache_ttl_seconds if cache_ttl is None else cache_ttl
        self._clock = clock
        self._memo: dict[str, tuple[float, EventMetadata]] = {}

    def __len__(self) -> int:
        return len(self._memo)

    def forget(self, contract_id: str | None = None) -> None:
        if contract_id is None:
            self._memo.clear()
        else:
            self._memo.pop(contract_id, None)

    async def _fetch_event_details(self, contract_address: str, contract_name: str) -> Any | None:
        contract_id = f"{contract_address}.{contract_name}"
        for function_name in self.functions:
            try:
                return await self._caller.call_read_only(
                    contract_address, contract_name, function_name
                )
            except (ContractCallError, httpx.HTTPStatusError) as exc:
                logger.debug("{} does not answer {}: {}", contract_id, function_name, exc)
                continue
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "Event details call {}::{} failed: {}", contract_id, function_name, exc
                )
                return None
        logger.warning(
            "No event details function answered for {} (tried {})",
            contract_id,
            ", ".join(self.functions),
        )
        return None

    async def resolve(self, contract_address: str, contract_name: str) -> EventMetadata:
        contract_id = f"{contract_address}.{contract_name}"
        cached = self._memo.get(contract_id)
        if cached and self._clock() - cached[0] < self.cache_ttl:
            return cached[1]

        try:
            details = await self._fetch_event_details(contract_address, contract_name)
            metadata = normalize_event_details(
                details,
                contract_name,
                fallback_image=self.fallback_image,
                zone=self.zone,
            )
        except Exception:  # noqa: BLE001
            logger.exception("Metadata normalization failed for {}", contract_id)
            return fallback_metadata(contract_name, image=self.fallback_image)

        if details is not None:
            now = self._clock()
            expired = [
                key for key, (stamp, _) in self._memo.items() if now - stamp >= self.cache_ttl
            ]
            for key in expired:
                del self._memo[key]
            self._memo[contract_id] = (now, metadata)
        return metadata
