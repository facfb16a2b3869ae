"""Decoder for serialized Clarity values returned by read-only contract calls.

Values decode into tagged dicts, ``{"type": "uint", "value": 5}``, mirroring the
JSON shape the Stacks tooling produces so downstream normalization can unwrap
them uniformly. Tuples decode to ``{"type": "tuple", "value": {name: tagged}}``.
"""

from __future__ import annotations

import hashlib
from typing import Any


C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

_INT = 0x00
_UINT = 0x01
_BUFFER = 0x02
_TRUE = 0x03
_FALSE = 0x04
_STANDARD_PRINCIPAL = 0x05
_CONTRACT_PRINCIPAL = 0x06
_OK = 0x07
_ERR = 0x08
_NONE = 0x09
_SOME = 0x0A
_LIST = 0x0B
_TUPLE = 0x0C
_STRING_ASCII = 0x0D
_STRING_UTF8 = 0x0E

_MAX_DEPTH = 64


class ClarityDecodeError(ValueError):
    """Raised when a payload is not a well-formed serialized Clarity value."""


def c32_encode(data: bytes) -> str:
    number = int.from_bytes(data, "big")
    digits: list[str] = []
    while number:
        number, remainder = divmod(number, 32)
        digits.append(C32_ALPHABET[remainder])
    leading_zero_bytes = len(data) - len(data.lstrip(b"\x00"))
    return "0" * leading_zero_bytes + "".join(reversed(digits))


def c32_address(version: int, hash160: bytes) -> str:
    """Render a principal as a c32check address such as ``SP2J6...``."""

    if not 0 <= version < 32:
        raise ClarityDecodeError(f"Principal version {version} is out of range")
    if len(hash160) != 20:
        raise ClarityDecodeError("Principal hash must be 20 bytes")
    checksum = hashlib.sha256(hashlib.sha256(bytes([version]) + hash160).digest()).digest()[:4]
    return "S" + C32_ALPHABET[version] + c32_encode(hash160 + checksum)


class _Reader:
    def __init__(self, payload: bytes) -> None:
        self._payload = payload
        self._offset = 0

    @property
    def exhausted(self) -> bool:
        return self._offset >= len(self._payload)

    def take(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._payload):
            raise ClarityDecodeError(
                f"Unexpected end of payload at byte {self._offset} (needed {size} more)"
            )
        chunk = self._payload[self._offset:end]
        self._offset = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return int.from_bytes(self.take(4), "big")


def _read_text(reader: _Reader, encoding: str) -> str:
    raw = reader.take(reader.u32())
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as exc:
        raise ClarityDecodeError(f"Invalid {encoding} string payload") from exc


def _read_principal(reader: _Reader) -> str:
    version = reader.u8()
    return c32_address(version, reader.take(20))


def _read_value(reader: _Reader, depth: int = 0) -> dict[str, Any]:
    if depth > _MAX_DEPTH:
        raise ClarityDecodeError("Clarity value nesting is too deep")

    prefix = reader.u8()
    if prefix == _INT:
        return {"type": "int", "value": int.from_bytes(reader.take(16), "big", signed=True)}
    if prefix == _UINT:
        return {"type": "uint", "value": int.from_bytes(reader.take(16), "big")}
    if prefix == _BUFFER:
        return {"type": "buffer", "value": "0x" + reader.take(reader.u32()).hex()}
    if prefix in (_TRUE, _FALSE):
        return {"type": "bool", "value": prefix == _TRUE}
    if prefix == _STANDARD_PRINCIPAL:
        return {"type": "principal", "value": _read_principal(reader)}
    if prefix == _CONTRACT_PRINCIPAL:
        address = _read_principal(reader)
        name = reader.take(reader.u8())
        try:
            contract_name = name.decode("ascii")
        except UnicodeDecodeError as exc:
            raise ClarityDecodeError("Contract name is not ASCII") from exc
        return {"type": "principal", "value": f"{address}.{contract_name}"}
    if prefix in (_OK, _ERR):
        return {
            "type": "ok" if prefix == _OK else "err",
            "value": _read_value(reader, depth + 1),
        }
    if prefix == _NONE:
        return {"type": "none", "value": None}
    if prefix == _SOME:
        return {"type": "some", "value": _read_value(reader, depth + 1)}
    if prefix == _LIST:
        count = reader.u32()
        return {"type": "list", "value": [_read_value(reader, depth + 1) for _ in range(count)]}
    if prefix == _TUPLE:
        count = reader.u32()
        entries: dict[str, Any] = {}
        for _ in range(count):
            key_raw = reader.take(reader.u8())
            try:
                key = key_raw.decode("ascii")
            except UnicodeDecodeError as exc:
                raise ClarityDecodeError("Tuple key is not ASCII") from exc
            entries[key] = _read_value(reader, depth + 1)
        return {"type": "tuple", "value": entries}
    if prefix == _STRING_ASCII:
        return {"type": "string-ascii", "value": _read_text(reader, "ascii")}
    if prefix == _STRING_UTF8:
        return {"type": "string-utf8", "value": _read_text(reader, "utf-8")}
    raise ClarityDecodeError(f"Unknown Clarity type prefix 0x{prefix:02x}")


def decode_hex(payload: str) -> dict[str, Any]:
    """Decode a ``0x``-prefixed (or bare) hex string into a tagged value."""

    if not isinstance(payload, str):
        raise ClarityDecodeError("Clarity payload must be a hex string")
    text = payload[2:] if payload.lower().startswith("0x") else payload
    try:
        raw = bytes.fromhex(text)
    except ValueError as exc:
        raise ClarityDecodeError("Clarity payload is not valid hex") from exc
    if not raw:
        raise ClarityDecodeError("Clarity payload is empty")

    reader = _Reader(raw)
    value = _read_value(reader)
    if not reader.exhausted:
        raise ClarityDecodeError("Trailing bytes after Clarity value")
    return value


__all__ = [
    "ClarityDecodeError",
    "c32_address",
    "c32_encode",
    "decode_hex",
]
