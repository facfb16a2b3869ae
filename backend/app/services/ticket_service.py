"""Cached access to a wallet's discovered tickets."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from functools import lru_cache

from loguru import logger

from app.core.config import settings
from app.domain import CacheEntry, Ticket
from discovery.client import HiroClient
from discovery.service import TicketPipeline


TicketFetcher = Callable[[str], Awaitable[list[Ticket]]]


class TicketCache:
    """Time-boxed memo of ticket lists keyed by wallet address.

    Concurrent misses for the same address share one in-flight fetch. Callers
    await it through ``asyncio.shield`` so cancelling one caller leaves the
    shared fetch running for the others.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = settings.ticket_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task[list[Ticket]]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _prune(self) -> None:
        now = self._clock()
        expired = [
            address
            for address, entry in self._entries.items()
            if now - entry.timestamp >= self.ttl_seconds
        ]
        for address in expired:
            del self._entries[address]

    def peek(self, address: str, ttl_seconds: float | None = None) -> list[Ticket] | None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        entry = self._entries.get(address)
        if entry is None or self._clock() - entry.timestamp >= ttl:
            return None
        return list(entry.data)

    async def _fill(self, address: str, fetch: TicketFetcher) -> list[Ticket]:
        current = asyncio.current_task()
        try:
            data = await fetch(address)
            if self._inflight.get(address) is current:
                self._prune()
                self._entries[address] = CacheEntry(data=list(data), timestamp=self._clock())
            return data
        finally:
            if self._inflight.get(address) is current:
                del self._inflight[address]

    async def get_or_fetch(
        self,
        address: str,
        fetch: TicketFetcher,
        ttl_seconds: float | None = None,
    ) -> list[Ticket]:
        cached = self.peek(address, ttl_seconds)
        if cached is not None:
            logger.debug("Serving cached tickets for {}", address)
            return cached

        task = self._inflight.get(address)
        if task is None:
            task = asyncio.create_task(self._fill(address, fetch))
            self._inflight[address] = task
        else:
            logger.debug("Joining in-flight ticket fetch for {}", address)
        return list(await asyncio.shield(task))

    def invalidate(self, address: str | None = None) -> None:
        if address is None:
            self._entries.clear()
            self._inflight.clear()
            return
        self._entries.pop(address, None)
        self._inflight.pop(address, None)


class TicketService:
    """Entry points consumed by the API layer."""

    def __init__(self, pipeline: TicketPipeline, cache: TicketCache | None = None) -> None:
        self._pipeline = pipeline
        self.cache = cache or TicketCache()

    async def get_user_tickets(self, address: str) -> list[Ticket]:
        return await self.cache.get_or_fetch(address, self._pipeline.get_tickets)

    def invalidate_user_tickets(self, address: str | None = None) -> None:
        self.cache.invalidate(address)
        if address is None:
            self._pipeline.resolver.forget()
        logger.info("Invalidated cached tickets for {}", address or "all addresses")


@lru_cache(maxsize=1)
def get_ticket_service() -> TicketService:
    """Build or reuse the process-wide service wired to the Hiro API."""

    return TicketService(TicketPipeline(HiroClient()))


async def get_user_tickets(address: str) -> list[Ticket]:
    return await get_ticket_service().get_user_tickets(address)


def invalidate_user_tickets(address: str | None = None) -> None:
    get_ticket_service().invalidate_user_tickets(address)


__all__ = [
    "TicketCache",
    "TicketService",
    "get_ticket_service",
    "get_user_tickets",
    "invalidate_user_tickets",
]
