from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import httpx
from loguru import logger

from app.core.config import settings

from .clarity import decode_hex


HOLDINGS_PATH = "/extended/v1/tokens/nft/holdings"
CALL_READ_PATH = "/v2/contracts/call-read/{address}/{name}/{function}"

_RETRIABLE_STATUS = {429, 500, 502, 503, 504}


class ChainClientError(RuntimeError):
    """Base error for failures talking to the Stacks API."""


class ContractCallError(ChainClientError):
    """Raised when a read-only call is rejected or returns no result."""

    def __init__(self, contract_id: str, function_name: str, detail: str) -> None:
        self.contract_id = contract_id
        self.function_name = function_name
        self.detail = detail
        super().__init__(f"{contract_id}::{function_name} failed: {detail}")


class HiroClient:
    """Thin async wrapper around the Hiro NFT holdings index and contract reads."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
        indexer_timeout: float | None = None,
        contract_timeout: float | None = None,
        retry_attempts: int | None = None,
        retry_backoff: Sequence[float] | None = None,
        retry_max_delay: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.base_url = (base_url or str(settings.hiro_api_base_url)).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.hiro_api_key
        self.page_size = page_size or settings.holdings_page_size
        self.max_pages = max_pages or settings.holdings_max_pages
        self.indexer_timeout = indexer_timeout or settings.indexer_timeout_seconds
        self.contract_timeout = contract_timeout or settings.contract_timeout_seconds
        self.retry_attempts = retry_attempts or settings.request_retry_attempts
        self.retry_backoff = tuple(retry_backoff or settings.request_retry_backoff_schedule)
        self.retry_max_delay = (
            settings.request_retry_max_delay_seconds if retry_max_delay is None else retry_max_delay
        )
        self._sleep = sleep

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=max(self.indexer_timeout, self.contract_timeout),
            transport=transport,
        )

    def _retry_delay(self, attempt: int, response: httpx.Response | None = None) -> float:
        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            if retry_after:
                try:
                    requested = float(retry_after)
                except ValueError:
                    requested = None
                if requested is not None and math.isfinite(requested):
                    return min(max(requested, 0.0), self.retry_max_delay)
        index = min(attempt - 1, len(self.retry_backoff) - 1)
        delay = self.retry_backoff[index] if index >= 0 else 0.0
        return min(delay, self.retry_max_delay)

    async def _request(
        self, method: str, path: str, *, timeout: float, **kwargs: Any
    ) -> httpx.Response:
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await asyncio.wait_for(
                    self.client.request(method, path, timeout=timeout, **kwargs),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as exc:
                raise httpx.TimeoutException(
                    f"{method} {path} exceeded {timeout:.1f}s"
                ) from exc
            except httpx.TimeoutException:
                raise
            except httpx.TransportError as exc:
                if attempt >= self.retry_attempts:
                    raise
                delay = self._retry_delay(attempt)
                logger.warning(
                    "Stacks API {} {} failed ({}); retrying in {}s (attempt {}/{})",
                    method,
                    path,
                    exc,
                    delay,
                    attempt,
                    self.retry_attempts,
                )
                await self._sleep(delay)
                continue

            if response.status_code in _RETRIABLE_STATUS and attempt < self.retry_attempts:
                delay = self._retry_delay(attempt, response)
                logger.warning(
                    "Stacks API {} {} returned {}; retrying in {}s (attempt {}/{})",
                    method,
                    path,
                    response.status_code,
                    delay,
                    attempt,
                    self.retry_attempts,
                )
                await self._sleep(delay)
                continue
            return response

    async def fetch_page(self, address: str, *, offset: int) -> dict[str, Any]:
        params = {"principal": address, "limit": self.page_size, "offset": offset}
        logger.info("Hiro GET {} params={}", HOLDINGS_PATH, params)
        response = await self._request(
            "GET", HOLDINGS_PATH, params=params, timeout=self.indexer_timeout
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ChainClientError("Holdings response is not a JSON object")
        return payload

    async def fetch_holdings(self, address: str) -> list[dict[str, Any]]:
        """Return raw holding entries for ``address``; empty on any failure."""

        holdings: list[dict[str, Any]] = []
        offset = 0
        for page in range(1, self.max_pages + 1):
            try:
                payload = await self.fetch_page(address, offset=offset)
            except (httpx.HTTPError, ChainClientError, ValueError) as exc:
                logger.warning(
                    "Holdings lookup for {} failed on page {}: {}", address, page, exc
                )
                break

            results = payload.get("results")
            if not isinstance(results, list) or not results:
                break
            holdings.extend(item for item in results if isinstance(item, dict))

            offset += len(results)
            total = payload.get("total")
            if not isinstance(total, int) or offset >= total:
                break

        logger.info("Indexer reported {} holdings for {}", len(holdings), address)
        return holdings

    async def call_read_only(
        self,
        contract_address: str,
        contract_name: str,
        function_name: str,
        arguments: Sequence[str] = (),
        *,
        sender: str | None = None,
    ) -> dict[str, Any]:
        """Invoke a read-only function and return its decoded Clarity value."""

        contract_id = f"{contract_address}.{contract_name}"
        path = CALL_READ_PATH.format(
            address=contract_address, name=contract_name, function=function_name
        )
        body = {"sender": sender or contract_address, "arguments": list(arguments)}
        response = await self._request(
            "POST", path, json=body, timeout=self.contract_timeout
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ContractCallError(contract_id, function_name, "response is not a JSON object")
        if not payload.get("okay"):
            raise ContractCallError(
                contract_id, function_name, str(payload.get("cause") or "call rejected")
            )
        result = payload.get("result")
        if not isinstance(result, str):
            raise ContractCallError(contract_id, function_name, "response has no result")
        return decode_hex(result)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "HiroClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
