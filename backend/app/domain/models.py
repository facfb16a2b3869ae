"""Typed domain representations shared by discovery, caching, and the API."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TicketStatus(str, Enum):
    ACTIVE = "active"
    USED = "used"


@dataclass(frozen=True, slots=True)
class OwnershipRecord:
    """One NFT held by the queried address, decoded from the indexer."""

    contract_address: str
    contract_name: str
    token_id: int
    asset_identifier: str

    @property
    def contract_id(self) -> str:
        return f"{self.contract_address}.{self.contract_name}"


@dataclass(slots=True)
class EventMetadata:
    """Event details shared by every token minted from one contract.

    Every field always carries a usable value; ``event_date`` and ``venue``
    are the only ones allowed to be ``None`` (meaning "to be announced").
    """

    event_name: str
    event_date: Any | None
    event_time: str
    venue: str | None
    image: str
    description: str
    category: str
    price: str
    price_formatted: str


@dataclass(frozen=True, slots=True)
class Ticket:
    """Display-ready ticket for one owned token."""

    id: str
    token_id: int
    contract_id: str
    contract_address: str
    contract_name: str
    event_name: str
    event_date: str
    event_time: str
    location: str
    image: str
    ticket_number: str
    status: TicketStatus
    category: str
    price: str
    quantity: int = 1


@dataclass(slots=True)
class CacheEntry:
    """Last successful pipeline result for a wallet address."""

    data: list[Ticket] = field(default_factory=list)
    timestamp: float = 0.0
