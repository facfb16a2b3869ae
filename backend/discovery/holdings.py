from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from loguru import logger

from app.domain import OwnershipRecord

from .clarity import ClarityDecodeError, decode_hex


class HoldingParseError(ValueError):
    """Raised when a raw holding entry cannot be decoded."""


_UINT_REPR = re.compile(r"u?([0-9]+)")


def _parse_token_id(value: Any) -> int:
    if not isinstance(value, dict):
        raise HoldingParseError("holding value is not an object")

    repr_value = value.get("repr")
    if isinstance(repr_value, str) and repr_value:
        match = _UINT_REPR.fullmatch(repr_value)
        if match is None:
            raise HoldingParseError(f"token id '{repr_value}' is not an unsigned integer")
        return int(match.group(1))

    hex_value = value.get("hex")
    if isinstance(hex_value, str) and hex_value:
        try:
            decoded = decode_hex(hex_value)
        except ClarityDecodeError as exc:
            raise HoldingParseError(f"token id payload is malformed: {exc}") from exc
        if decoded.get("type") != "uint":
            raise HoldingParseError(f"token id has type {decoded.get('type')}, expected uint")
        return int(decoded["value"])

    raise HoldingParseError("holding value carries no token id")


def parse_holding(raw: dict[str, Any]) -> OwnershipRecord:
    """Decode one indexer entry into an ownership record."""

    asset_identifier = raw.get("asset_identifier") if isinstance(raw, dict) else None
    if not isinstance(asset_identifier, str) or "::" not in asset_identifier:
        raise HoldingParseError(f"asset identifier {asset_identifier!r} lacks '::' separator")

    contract_part, asset_name = asset_identifier.split("::", 1)
    contract_address, _, contract_name = contract_part.partition(".")
    if not contract_address or not contract_name or not asset_name:
        raise HoldingParseError(f"asset identifier {asset_identifier!r} is missing contract parts")

    return OwnershipRecord(
        contract_address=contract_address,
        contract_name=contract_name,
        token_id=_parse_token_id(raw.get("value")),
        asset_identifier=asset_identifier,
    )


def parse_holdings(raw_holdings: Iterable[dict[str, Any]]) -> list[OwnershipRecord]:
    records: list[OwnershipRecord] = []
    for index, raw in enumerate(raw_holdings):
        try:
            records.append(parse_holding(raw))
        except ValueError as exc:
            logger.warning("Skipping holding #{}: {}", index, exc)
    return records


def group_by_contract(records: Iterable[OwnershipRecord]) -> dict[str, list[OwnershipRecord]]:
    """Partition records by contract id, preserving first-seen order."""

    groups: dict[str, list[OwnershipRecord]] = {}
    for record in records:
        groups.setdefault(record.contract_id, []).append(record)
    return groups
