"""Domain models representing discovered tickets."""

from .models import CacheEntry, EventMetadata, OwnershipRecord, Ticket, TicketStatus

__all__ = [
    "CacheEntry",
    "EventMetadata",
    "OwnershipRecord",
    "Ticket",
    "TicketStatus",
]
