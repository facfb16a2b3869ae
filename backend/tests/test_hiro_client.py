from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from discovery.client import ContractCallError, HiroClient

from factories import holding


CONTRACT = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7.launch-night"


def _client(handler, sleeps: list[float] | None = None, **kwargs) -> HiroClient:
    recorded = sleeps if sleeps is not None else []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    options = {
        "base_url": "https://hiro.test",
        "api_key": "",
        "page_size": 2,
        "max_pages": 1,
        "retry_attempts": 3,
        "retry_backoff": (1.0, 2.0),
    }
    options.update(kwargs)
    return HiroClient(transport=httpx.MockTransport(handler), sleep=fake_sleep, **options)


def _run(client: HiroClient, coro_factory):
    async def scenario():
        async with client:
            return await coro_factory(client)

    return asyncio.run(scenario())


def test_fetch_holdings_sends_principal_and_page_size():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"limit": 2, "offset": 0, "total": 1, "results": [holding(CONTRACT, 1)]}
        )

    holdings = _run(_client(handler, api_key="secret"), lambda c: c.fetch_holdings("SP_WALLET"))

    assert [item["asset_identifier"] for item in holdings] == [f"{CONTRACT}::ticket"]
    request = seen[0]
    assert request.url.path == "/extended/v1/tokens/nft/holdings"
    assert request.url.params["principal"] == "SP_WALLET"
    assert request.url.params["limit"] == "2"
    assert request.headers["x-api-key"] == "secret"


def test_fetch_holdings_follows_pages_up_to_limit():
    offsets: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        offsets.append(str(offset))
        results = [holding(CONTRACT, offset + 1), holding(CONTRACT, offset + 2)]
        return httpx.Response(200, json={"total": 10, "offset": offset, "results": results})

    holdings = _run(_client(handler, max_pages=3), lambda c: c.fetch_holdings("SP_WALLET"))

    assert offsets == ["0", "2", "4"]
    assert len(holdings) == 6


def test_fetch_holdings_returns_empty_on_server_error(log_messages):
    sleeps: list[float] = []
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(503, json={"error": "unavailable"})

    holdings = _run(_client(handler, sleeps), lambda c: c.fetch_holdings("SP_WALLET"))

    assert holdings == []
    assert attempts == 3
    assert sleeps == [1.0, 2.0]
    assert any("Holdings lookup for SP_WALLET failed" in message for _, message in log_messages)


def test_fetch_holdings_returns_empty_on_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert _run(_client(handler), lambda c: c.fetch_holdings("SP_WALLET")) == []


def test_fetch_holdings_returns_empty_on_invalid_json():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>oops</html>")

    assert _run(_client(handler), lambda c: c.fetch_holdings("SP_WALLET")) == []


def test_rate_limit_honours_retry_after():
    sleeps: list[float] = []
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(200, json={"total": 0, "results": []}),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    holdings = _run(_client(handler, sleeps), lambda c: c.fetch_holdings("SP_WALLET"))

    assert holdings == []
    assert sleeps == [3.0]


@pytest.mark.parametrize("retry_after", ["86400", "inf", "nan"])
def test_rate_limit_wait_is_capped(retry_after):
    sleeps: list[float] = []
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": retry_after}),
            httpx.Response(200, json={"total": 1, "results": [holding(CONTRACT, 1)]}),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    holdings = _run(
        _client(handler, sleeps, retry_max_delay=5.0),
        lambda c: c.fetch_holdings("SP_WALLET"),
    )

    assert len(holdings) == 1
    assert len(sleeps) == 1
    assert 0.0 <= sleeps[0] <= 5.0


def test_backoff_schedule_is_capped():
    sleeps: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    holdings = _run(
        _client(handler, sleeps, retry_backoff=(30.0, 60.0), retry_max_delay=4.0),
        lambda c: c.fetch_holdings("SP_WALLET"),
    )

    assert holdings == []
    assert sleeps == [4.0, 4.0]


def test_client_error_is_not_retried():
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(400, json={"error": "bad principal"})

    assert _run(_client(handler), lambda c: c.fetch_holdings("not-a-principal")) == []
    assert attempts == 1


def test_call_read_only_decodes_result():
    bodies: list[dict] = []
    tuple_hex = "0c00000001" + "04" + b"name".hex() + "0d00000004" + b"Gala".hex()

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        assert request.url.path == (
            "/v2/contracts/call-read/SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7/launch-night/get-event-details"
        )
        return httpx.Response(200, json={"okay": True, "result": "0x07" + tuple_hex})

    address, name = CONTRACT.split(".")
    value = _run(
        _client(handler),
        lambda c: c.call_read_only(address, name, "get-event-details"),
    )

    assert value == {
        "type": "ok",
        "value": {"type": "tuple", "value": {"name": {"type": "string-ascii", "value": "Gala"}}},
    }
    assert bodies == [{"sender": address, "arguments": []}]


def test_call_read_only_raises_when_node_rejects_call():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"okay": False, "cause": "Unchecked(NoSuchPublicFunction)"})

    address, name = CONTRACT.split(".")
    with pytest.raises(ContractCallError) as excinfo:
        _run(_client(handler), lambda c: c.call_read_only(address, name, "get-event-details"))

    assert "NoSuchPublicFunction" in str(excinfo.value)
    assert excinfo.value.contract_id == CONTRACT
