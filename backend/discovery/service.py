from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime, timezone, tzinfo
from typing import Any, Protocol

from loguru import logger

from app.core.config import settings
from app.domain import OwnershipRecord, Ticket

from .holdings import group_by_contract, parse_holdings
from .metadata import MetadataResolver, ReadOnlyCaller, parse_event_date
from .tickets import synthesize_tickets


_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class ChainGateway(ReadOnlyCaller, Protocol):
    async def fetch_holdings(self, address: str) -> list[dict[str, Any]]: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sort_key(item: tuple[datetime | None, Ticket]) -> tuple[bool, datetime]:
    starts_at = item[0]
    return (starts_at is None, starts_at or _EARLIEST)


class TicketPipeline:
    """Fetch, parse, group, resolve and synthesize the tickets a wallet holds."""

    def __init__(
        self,
        gateway: ChainGateway,
        *,
        resolver: MetadataResolver | None = None,
        concurrency: int | None = None,
        zone: tzinfo | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._gateway = gateway
        self.resolver = resolver or MetadataResolver(gateway)
        self.concurrency = concurrency or settings.metadata_concurrency
        self.zone = zone or settings.display_zone
        self._now = now

    async def _tickets_for_contract(
        self,
        contract_id: str,
        records: Sequence[OwnershipRecord],
        semaphore: asyncio.Semaphore,
        now: datetime,
    ) -> list[tuple[datetime | None, Ticket]]:
        first = records[0]
        try:
            async with semaphore:
                metadata = await self.resolver.resolve(first.contract_address, first.contract_name)
            tickets = synthesize_tickets(contract_id, records, metadata, now=now, zone=self.zone)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Skipping {} ticket(s) from {} after metadata failure", len(records), contract_id
            )
            return []
        starts_at = parse_event_date(metadata.event_date)
        return [(starts_at, ticket) for ticket in tickets]

    async def _collect(self, address: str) -> list[Ticket]:
        holdings = await self._gateway.fetch_holdings(address)
        if not holdings:
            logger.info("No holdings found for {}", address)
            return []

        records = parse_holdings(holdings)
        if not records:
            logger.info("No decodable holdings for {} ({} raw entries)", address, len(holdings))
            return []

        groups = group_by_contract(records)
        logger.info(
            "Resolving {} holdings for {} across {} contract(s)", len(records), address, len(groups)
        )

        now = self._now()
        semaphore = asyncio.Semaphore(self.concurrency)
        batches = await asyncio.gather(
            *(
                self._tickets_for_contract(contract_id, group, semaphore, now)
                for contract_id, group in groups.items()
            )
        )
        dated = [item for batch in batches for item in batch]
        dated.sort(key=_sort_key)
        tickets = [ticket for _, ticket in dated]
        logger.info("Built {} ticket(s) for {}", len(tickets), address)
        return tickets

    async def get_tickets(self, address: str) -> list[Ticket]:
        """Return the wallet's tickets; never raises, empty on total failure."""

        try:
            return await self._collect(address)
        except Exception:  # noqa: BLE001
            logger.exception("Ticket discovery failed for {}", address)
            return []
