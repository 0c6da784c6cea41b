import struct

import pytest

from torrentkit.peer_protocol import (
    Bitfield,
    Block,
    BlockInfo,
    Cancel,
    Choke,
    ExtendedHandshake,
    Handshake,
    Have,
    Interested,
    KeepAlive,
    MessageCodec,
    MessageId,
    NotInterested,
    Piece,
    ProtocolError,
    Request,
    Unchoke,
)
from torrentkit.types import InfoHash, PeerID

INFO_HASH = InfoHash(bytes(range(20)))
PEER_ID = PeerID(b"-RS" + b"a" * 17)


def test_handshake_layout():
    raw = Handshake.create(PEER_ID, INFO_HASH).to_bytes()
    assert len(raw) == Handshake.HANDSHAKE_LEN
    assert raw[0] == 19
    assert raw[1:20] == b"BitTorrent protocol"
    assert raw[28:48] == bytes(INFO_HASH)
    assert raw[48:68] == bytes(PEER_ID)


def test_handshake_create_sets_extension_bit():
    handshake = Handshake.create(PEER_ID, INFO_HASH)
    assert handshake.reserved[5] == Handshake.EXTENSION_PROTOCOL_FLAG
    assert handshake.support_extended_message()


def test_handshake_without_extension_bit():
    handshake = Handshake(peer_id=PEER_ID, info_hash=INFO_HASH)
    assert not handshake.support_extended_message()


def test_handshake_round_trip():
    handshake = Handshake.create(PEER_ID, INFO_HASH)
    assert Handshake.from_bytes(handshake.to_bytes()) == handshake


@pytest.mark.parametrize(
    "mutate",
    [
        lambda raw: raw[:-1],
        lambda raw: raw + b"\x00",
        lambda raw: b"\x12" + raw[1:],
        lambda raw: raw[:1] + b"X" + raw[2:],
    ],
)
def test_handshake_from_bytes_rejects_bad_input(mutate):
    raw = Handshake.create(PEER_ID, INFO_HASH).to_bytes()
    assert Handshake.from_bytes(mutate(raw)) is None


def test_handshake_reserved_length_checked():
    with pytest.raises(ValueError):
        Handshake(peer_id=PEER_ID, info_hash=INFO_HASH, reserved=b"\x00" * 7)


def test_encode_keep_alive_is_zero_length():
    assert MessageCodec().encode(KeepAlive()) == struct.pack(">I", 0)


def test_encode_choke_wire_bytes():
    assert MessageCodec().encode(Choke()) == struct.pack(">IB", 1, MessageId.CHOKE)


def test_encode_request_prefix():
    raw = MessageCodec().encode(Request(BlockInfo(1, 2, 3)))
    assert raw[:5] == struct.pack(">IB", 13, MessageId.REQUEST)
    assert raw[5:] == struct.pack(">III", 1, 2, 3)


def test_encode_piece_length_counts_header():
    data = b"hello"
    raw = MessageCodec().encode(Piece(Block(4, 8, data)))
    assert struct.unpack(">I", raw[:4])[0] == len(data) + 9
    assert raw[-len(data):] == data


@pytest.mark.parametrize(
    "message",
    [
        KeepAlive(),
        Choke(),
        Unchoke(),
        Interested(),
        NotInterested(),
        Have(piece_index=42),
        Bitfield(data=b"\xff\x0f"),
        Bitfield(data=b""),
        Request(BlockInfo(index=1, begin=16384, length=16384)),
        Cancel(BlockInfo(index=7, begin=0, length=512)),
        Piece(Block(index=3, begin=32, data=b"payload")),
        Piece(Block(index=0, begin=0, data=b"")),
    ],
)
def test_round_trip(message):
    codec = MessageCodec()
    buffer = bytearray(codec.encode(message))
    assert codec.decode(buffer) == message
    assert buffer == bytearray()


def test_decode_incomplete_leaves_buffer():
    codec = MessageCodec()
    raw = codec.encode(Have(piece_index=5))
    buffer = bytearray(raw[:-1])
    assert codec.decode(buffer) is None
    assert bytes(buffer) == raw[:-1]


def test_decode_short_prefix():
    buffer = bytearray(b"\x00\x00")
    assert MessageCodec().decode(buffer) is None
    assert buffer == bytearray(b"\x00\x00")


def test_decode_several_frames_in_order():
    codec = MessageCodec()
    messages = [Unchoke(), Have(piece_index=9), KeepAlive(), Interested()]
    buffer = bytearray(b"".join(codec.encode(m) for m in messages))
    decoded = []
    while (message := codec.decode(buffer)) is not None:
        decoded.append(message)
    assert decoded == messages
    assert not buffer


def test_decode_unknown_id():
    buffer = bytearray(struct.pack(">IB", 1, 99))
    with pytest.raises(ProtocolError):
        MessageCodec().decode(buffer)


def test_decode_extended_handshake_unsupported():
    buffer = bytearray(struct.pack(">IB", 1, MessageId.EXTENDED_HANDSHAKE))
    with pytest.raises(ProtocolError):
        MessageCodec().decode(buffer)


def test_decode_short_have_payload():
    buffer = bytearray(struct.pack(">IB", 3, MessageId.HAVE) + b"\x00\x01")
    with pytest.raises(ProtocolError):
        MessageCodec().decode(buffer)


def test_encode_rejects_other_objects():
    with pytest.raises(TypeError):
        MessageCodec().encode("choke")


def test_extended_handshake_defaults():
    handshake = ExtendedHandshake(v="client 1.0", reqq=250)
    assert handshake.v == "client 1.0"
    assert handshake.reqq == 250
    assert handshake.m is None and handshake.metadata_size is None