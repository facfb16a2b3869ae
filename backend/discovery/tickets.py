from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, tzinfo
from typing import Any

from app.domain import EventMetadata, OwnershipRecord, Ticket, TicketStatus

from .metadata import TBA, parse_event_date


TICKET_NUMBER_WIDTH = 6


def ticket_number(token_id: int) -> str:
    return f"#TKT-{token_id:0{TICKET_NUMBER_WIDTH}d}"


def derive_status(event_date: Any, now: datetime) -> TicketStatus:
    """A ticket stays active until its event starts; unknown dates stay active."""

    parsed = parse_event_date(event_date)
    if parsed is None or parsed > now:
        return TicketStatus.ACTIVE
    return TicketStatus.USED


def format_display_date(event_date: Any, zone: tzinfo) -> str:
    parsed = parse_event_date(event_date)
    if parsed is None:
        return TBA
    local = parsed.astimezone(zone)
    return f"{local:%b} {local.day}, {local.year}"


def synthesize_tickets(
    contract_id: str,
    records: Iterable[OwnershipRecord],
    metadata: EventMetadata,
    *,
    now: datetime,
    zone: tzinfo,
) -> list[Ticket]:
    """Build one ticket per owned token, all sharing the contract's metadata."""

    event_date = format_display_date(metadata.event_date, zone)
    status = derive_status(metadata.event_date, now)
    return [
        Ticket(
            id=f"{contract_id}-{record.token_id}",
            token_id=record.token_id,
            contract_id=contract_id,
            contract_address=record.contract_address,
            contract_name=record.contract_name,
            event_name=metadata.event_name,
            event_date=event_date,
            event_time=metadata.event_time or TBA,
            location=metadata.venue or TBA,
            image=metadata.image,
            ticket_number=ticket_number(record.token_id),
            status=status,
            category=metadata.category,
            price=metadata.price_formatted,
        )
        for record in records
    ]
