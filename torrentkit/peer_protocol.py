"""Peer wire protocol: the handshake and length-prefixed messages."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Optional, Union

from torrentkit.types import InfoHash, PeerID

_LENGTH_PREFIX = struct.Struct(">I")
_U32 = struct.Struct(">I")
_BLOCK_INFO = struct.Struct(">III")
_PIECE_HEADER = struct.Struct(">II")


class ProtocolError(ValueError):
    """Raised when bytes from a peer do not form a valid message."""


class MessageId(IntEnum):
    """Identifier byte that follows the length prefix."""

    CHOKE = 0
    UNCHOKE = 1
    INTERESTED = 2
    NOT_INTERESTED = 3
    HAVE = 4
    BITFIELD = 5
    REQUEST = 6
    PIECE = 7
    CANCEL = 8
    EXTENDED_HANDSHAKE = 20


@dataclass(frozen=True)
class BlockInfo:
    """A block of a piece, named by piece index, offset and length."""

    index: int
    begin: int
    length: int


@dataclass(frozen=True)
class Block:
    """A block of a piece together with its data."""

    index: int
    begin: int
    data: bytes


@dataclass(frozen=True)
class KeepAlive:
    """Zero-length message that keeps a connection open."""


@dataclass(frozen=True)
class Choke:
    """The sender will not answer requests."""


@dataclass(frozen=True)
class Unchoke:
    """The sender will answer requests."""


@dataclass(frozen=True)
class Interested:
    """The sender wants pieces the receiver has."""


@dataclass(frozen=True)
class NotInterested:
    """The sender wants nothing from the receiver."""


@dataclass(frozen=True)
class Have:
    """The sender has finished downloading a piece."""

    piece_index: int


@dataclass(frozen=True)
class Bitfield:
    """The pieces the sender has, one bit per piece."""

    data: bytes


@dataclass(frozen=True)
class Request:
    """Ask for a block."""

    block: BlockInfo


@dataclass(frozen=True)
class Piece:
    """A block of data."""

    block: Block


@dataclass(frozen=True)
class Cancel:
    """Withdraw an earlier request."""

    block: BlockInfo


Message = Union[
    KeepAlive,
    Choke,
    Unchoke,
    Interested,
    NotInterested,
    Have,
    Bitfield,
    Request,
    Piece,
    Cancel,
]


@dataclass(frozen=True)
class Handshake:
    """The first message on a peer connection.

    Layout: ``<pstrlen><pstr><reserved><info_hash><peer_id>``.
    """

    PSTRLEN: ClassVar[int] = 19
    PSTR: ClassVar[bytes] = b"BitTorrent protocol"
    HANDSHAKE_LEN: ClassVar[int] = 68
    EXTENSION_PROTOCOL_FLAG: ClassVar[int] = 0x10

    peer_id: PeerID
    info_hash: InfoHash
    reserved: bytes = field(default=bytes(8))

    def __post_init__(self) -> None:
        reserved = bytes(self.reserved)
        if len(reserved) != 8:
            raise ValueError(f"reserved must be 8 bytes, got {len(reserved)}")
        object.__setattr__(self, "reserved", reserved)

    @classmethod
    def create(cls, peer_id: PeerID, info_hash: InfoHash) -> "Handshake":
        """A handshake that announces support for the extension protocol."""
        reserved = bytearray(8)
        reserved[5] |= cls.EXTENSION_PROTOCOL_FLAG
        return cls(peer_id=peer_id, info_hash=info_hash, reserved=bytes(reserved))

    def support_extended_message(self) -> bool:
        """Whether the extension-protocol bit is set in the reserved bytes."""
        return bool(self.reserved[5] & self.EXTENSION_PROTOCOL_FLAG)

    def to_bytes(self) -> bytes:
        return b"".join(
            (
                bytes([self.PSTRLEN]),
                self.PSTR,
                self.reserved,
                bytes(self.info_hash),
                bytes(self.peer_id),
            )
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["Handshake"]:
        """Parse a 68-byte handshake; ``None`` if it is not one."""
        data = bytes(data)
        if (
            len(data) != cls.HANDSHAKE_LEN
            or data[0] != cls.PSTRLEN
            or data[1:20] != cls.PSTR
        ):
            return None
        return cls(
            reserved=data[20:28],
            info_hash=InfoHash(data[28:48]),
            peer_id=PeerID(data[48:68]),
        )


@dataclass
class ExtendedHandshake:
    """Fields of the extension-protocol handshake dictionary."""

    m: Optional[dict[str, int]] = None
    v: Optional[str] = None
    reqq: Optional[int] = None
    p: Optional[int] = None
    yourip: Optional[bytes] = None
    ipv4: Optional[bytes] = None
    ipv6: Optional[bytes] = None
    metadata_size: Optional[int] = None
    upload_only: Optional[int] = None
    ut_holepunch: Optional[int] = None
    lt_donthave: Optional[int] = None
    complete_ago: Optional[int] = None


_EMPTY_MESSAGES = {
    MessageId.CHOKE: Choke,
    MessageId.UNCHOKE: Unchoke,
    MessageId.INTERESTED: Interested,
    MessageId.NOT_INTERESTED: NotInterested,
}


class MessageCodec:
    """Frames messages as ``<length prefix><message id><payload>``."""

    def decode(self, buffer: bytearray) -> Optional[Message]:
        """Take one complete message off the front of ``buffer``.

        Returns ``None`` and leaves the buffer untouched if it does not yet
        hold a whole message.
        """
        if len(buffer) < _LENGTH_PREFIX.size:
            return None
        (length,) = _LENGTH_PREFIX.unpack_from(buffer)
        end = _LENGTH_PREFIX.size + length
        if len(buffer) < end:
            return None
        frame = bytes(buffer[_LENGTH_PREFIX.size : end])
        message = KeepAlive() if length == 0 else self._parse(frame[0], frame[1:])
        del buffer[:end]
        return message

    @staticmethod
    def _parse(raw_id: int, payload: bytes) -> Message:
        try:
            msg_id = MessageId(raw_id)
        except ValueError:
            raise ProtocolError(f"unknown message id {raw_id}") from None

        if msg_id in _EMPTY_MESSAGES:
            return _EMPTY_MESSAGES[msg_id]()
        if msg_id is MessageId.HAVE:
            _require(payload, _U32.size, msg_id)
            return Have(piece_index=_U32.unpack_from(payload)[0])
        if msg_id is MessageId.BITFIELD:
            return Bitfield(data=payload)
        if msg_id in (MessageId.REQUEST, MessageId.CANCEL):
            _require(payload, _BLOCK_INFO.size, msg_id)
            info = BlockInfo(*_BLOCK_INFO.unpack_from(payload))
            return Request(info) if msg_id is MessageId.REQUEST else Cancel(info)
        if msg_id is MessageId.PIECE:
            _require(payload, _PIECE_HEADER.size, msg_id)
            index, begin = _PIECE_HEADER.unpack_from(payload)
            return Piece(Block(index, begin, payload[_PIECE_HEADER.size :]))
        raise ProtocolError("extended handshake messages are not supported")

    def encode(self, message: Message) -> bytes:
        """The wire form of ``message``."""
        match message:
            case KeepAlive():
                return _LENGTH_PREFIX.pack(0)
            case Choke() | Unchoke() | Interested() | NotInterested():
                msg_id = next(k for k, v in _EMPTY_MESSAGES.items() if v is type(message))
                return _frame(msg_id, b"")
            case Have(piece_index=index):
                return _frame(MessageId.HAVE, _U32.pack(index))
            case Bitfield(data=data):
                return _frame(MessageId.BITFIELD, bytes(data))
            case Request(block=info):
                return _frame(MessageId.REQUEST, _pack_info(info))
            case Cancel(block=info):
                return _frame(MessageId.CANCEL, _pack_info(info))
            case Piece(block=block):
                header = _PIECE_HEADER.pack(block.index, block.begin)
                return _frame(MessageId.PIECE, header + bytes(block.data))
        raise TypeError(f"cannot encode {type(message).__name__}")


def _require(payload: bytes, size: int, msg_id: MessageId) -> None:
    if len(payload) < size:
        raise ProtocolError(f"{msg_id.name.lower()} payload too short")


def _pack_info(info: BlockInfo) -> bytes:
    return _BLOCK_INFO.pack(info.index, info.begin, info.length)


def _frame(msg_id: MessageId, payload: bytes) -> bytes:
    return _LENGTH_PREFIX.pack(len(payload) + 1) + bytes([msg_id]) + payload