"""Bencode decoding and encoding.

Decoded values map onto plain Python types: integers become ``int``, byte
strings ``bytes``, lists ``list`` and dictionaries ``dict`` with ``bytes``
keys kept in sorted order.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Union

BencodeValue = Union[int, bytes, list, dict]

_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

_LENGTH_RE = re.compile(rb"\+?[0-9]+")
_INT_RE = re.compile(r"[+-]?[0-9]+")


class BencodeErrorKind(Enum):
    """The ways a bencoded document can be malformed."""

    INVALID_BENCODE = "Invalid Bencode format"
    INVALID_NUMBER = "Invalid Bencode number"
    INVALID_STRING = "Invalid Bencode string"
    INVALID_LIST = "Invalid Bencode list"
    INVALID_DICT = "Invalid Bencode dictionary"


class BencodeError(ValueError):
    """Raised when data cannot be decoded as bencode."""

    def __init__(self, kind: BencodeErrorKind) -> None:
        super().__init__(kind.value)
        self.kind = kind


def decode(data: bytes) -> BencodeValue:
    """Decode the first bencoded value in ``data``; trailing bytes are ignored."""
    value, _ = _decode_at(bytes(data), 0)
    return value


def _decode_at(data: bytes, pos: int) -> tuple[BencodeValue, int]:
    if pos >= len(data):
        raise BencodeError(BencodeErrorKind.INVALID_BENCODE)
    lead = data[pos : pos + 1]
    if lead == b"i":
        return _decode_int(data, pos)
    if lead.isdigit():
        return _decode_bytes(data, pos)
    if lead == b"l":
        return _decode_list(data, pos)
    if lead == b"d":
        return _decode_dict(data, pos)
    raise BencodeError(BencodeErrorKind.INVALID_BENCODE)


def _decode_bytes(data: bytes, pos: int) -> tuple[bytes, int]:
    colon = data.find(b":", pos)
    if colon < 0:
        raise BencodeError(BencodeErrorKind.INVALID_STRING)
    length_part = data[pos:colon]
    if not _LENGTH_RE.fullmatch(length_part):
        raise BencodeError(BencodeErrorKind.INVALID_STRING)
    length = int(length_part)
    start = colon + 1
    if len(data) - start < length:
        raise BencodeError(BencodeErrorKind.INVALID_STRING)
    end = start + length
    return data[start:end], end


def _decode_int(data: bytes, pos: int) -> tuple[int, int]:
    end = data.find(b"e", pos + 1)
    if end < 0:
        raise BencodeError(BencodeErrorKind.INVALID_NUMBER)
    try:
        text = data[pos + 1 : end].decode("utf-8")
    except UnicodeDecodeError:
        raise BencodeError(BencodeErrorKind.INVALID_BENCODE) from None
    if not _INT_RE.fullmatch(text):
        raise BencodeError(BencodeErrorKind.INVALID_NUMBER)
    number = int(text)
    if not _I64_MIN <= number <= _I64_MAX:
        raise BencodeError(BencodeErrorKind.INVALID_NUMBER)
    return number, end + 1


def _decode_list(data: bytes, pos: int) -> tuple[list, int]:
    items: list = []
    pos += 1
    while True:
        if pos >= len(data):
            raise BencodeError(BencodeErrorKind.INVALID_LIST)
        if data[pos : pos + 1] == b"e":
            return items, pos + 1
        item, pos = _decode_at(data, pos)
        items.append(item)


def _decode_dict(data: bytes, pos: int) -> tuple[dict, int]:
    entries: dict = {}
    pos += 1
    while True:
        if pos >= len(data):
            raise BencodeError(BencodeErrorKind.INVALID_DICT)
        if data[pos : pos + 1] == b"e":
            return dict(sorted(entries.items())), pos + 1
        key, pos = _decode_at(data, pos)
        if not isinstance(key, bytes):
            raise BencodeError(BencodeErrorKind.INVALID_DICT)
        value, pos = _decode_at(data, pos)
        entries[key] = value


def get(value: Any, key: bytes | str) -> BencodeValue | None:
    """Look ``key`` up in a decoded dictionary; ``None`` for other values."""
    if not isinstance(value, dict):
        return None
    if isinstance(key, str):
        key = key.encode("utf-8")
    return value.get(key)


def encode(value: Any) -> bytes:
    """Encode a value as bencode.

    Accepts ``int``, ``bytes``, ``str`` (as UTF-8), lists and tuples,
    dictionaries with ``bytes`` or ``str`` keys, and any object that offers
    a ``to_bencode()`` method returning one of these.
    """
    return b"".join(_encode_parts(value))


def _key_bytes(key: Any) -> bytes:
    if isinstance(key, str):
        return key.encode("utf-8")
    if isinstance(key, (bytes, bytearray, memoryview)):
        return bytes(key)
    raise TypeError(f"dictionary keys must be bytes or str, not {type(key).__name__}")


def _encode_parts(value: Any):
    to_bencode = getattr(value, "to_bencode", None)
    if callable(to_bencode):
        value = to_bencode()
    if isinstance(value, bool):
        raise TypeError("cannot bencode a bool")
    if isinstance(value, int):
        if not _I64_MIN <= value <= _I64_MAX:
            raise ValueError("integer does not fit in 64 bits")
        yield b"i%de" % value
    elif isinstance(value, str):
        yield from _encode_parts(value.encode("utf-8"))
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        yield b"%d:" % len(raw)
        yield raw
    elif isinstance(value, (list, tuple)):
        yield b"l"
        for item in value:
            yield from _encode_parts(item)
        yield b"e"
    elif isinstance(value, dict):
        items = sorted((_key_bytes(k), v) for k, v in value.items())
        yield b"d"
        for key, item in items:
            yield from _encode_parts(key)
            yield from _encode_parts(item)
        yield b"e"
    else:
        raise TypeError(f"cannot bencode {type(value).__name__}")