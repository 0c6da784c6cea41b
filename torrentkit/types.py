"""Fixed-size identifiers used throughout the protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeVar

_ID_LEN = 20

_T = TypeVar("_T", bound="_Id20")


def _parse_hex(hex_str: str) -> bytes:
    raw = bytes.fromhex(hex_str)
    if len(raw) != _ID_LEN:
        raise ValueError("invalid string length")
    return raw


@dataclass(frozen=True)
class _Id20:
    value: bytes

    def __post_init__(self) -> None:
        raw = bytes(self.value)
        if len(raw) != _ID_LEN:
            raise ValueError(
                f"{type(self).__name__} must be {_ID_LEN} bytes, got {len(raw)}"
            )
        object.__setattr__(self, "value", raw)

    @classmethod
    def from_slice(cls: type[_T], data: bytes) -> _T | None:
        """Build from ``data`` if it is exactly 20 bytes, else return ``None``."""
        if len(data) != _ID_LEN:
            return None
        return cls(bytes(data))

    def __bytes__(self) -> bytes:
        return self.value

    def __str__(self) -> str:
        return self.value.hex()


@dataclass(frozen=True)
class InfoHash(_Id20):
    """SHA-1 hash of a torrent's info dictionary."""

    @classmethod
    def from_hex(cls, hex_str: str) -> InfoHash:
        """Parse a 40-character hex string; raise ``ValueError`` otherwise."""
        return cls(_parse_hex(hex_str))

    def to_hex(self) -> str:
        """Lower-case hex form."""
        return self.value.hex()


@dataclass(frozen=True)
class PeerID(_Id20):
    """Twenty-byte identifier of a peer."""

    @classmethod
    def from_hex(cls, hex_str: str) -> PeerID:
        """Parse a 40-character hex string; raise ``ValueError`` otherwise."""
        return cls(_parse_hex(hex_str))

    def to_hex(self) -> str:
        """Lower-case hex form."""
        return self.value.hex()