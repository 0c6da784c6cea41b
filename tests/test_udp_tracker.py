import asyncio
import contextlib
import struct

import pytest

from torrentkit.tracker_types import AnnounceParams, Event, TrackerError
from torrentkit.types import InfoHash, PeerID
from torrentkit.udp_tracker import (
    AnnounceRequest,
    AnnounceResponse,
    ConnectionRequest,
    ConnectionResponse,
    UdpTrackerClient,
)

CONNECTION_ID = 0x0102030405060708
INFO_HASH = InfoHash(bytes(range(20)))


def _params():
    return AnnounceParams(
        info_hash=INFO_HASH,
        peer_id=PeerID(bytes(20)),
        port=6881,
        uploaded=0,
        downloaded=0,
        left=92063,
        event=Event.STARTED,
    )


class _MockTracker(asyncio.DatagramProtocol):
    def __init__(self, mode):
        self.mode = mode
        self.received = []
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.received.append(data)
        if len(data) < 16:
            return
        action = int.from_bytes(data[8:12], "big", signed=True)
        tx = data[12:16]
        if action == 0:
            if self.mode == "silent":
                return
            if self.mode == "wrong_txn":
                tx = bytes(b ^ 0xFF for b in tx)
            if self.mode == "short_first":
                self.transport.sendto(b"\x00\x01", addr)
            self.transport.sendto(
                struct.pack(">i", 0) + tx + CONNECTION_ID.to_bytes(8, "big"), addr
            )
        elif action == 1:
            peers = bytes([1, 2, 3, 4]) + (6881).to_bytes(2, "big")
            peers += bytes([5, 6, 7, 8]) + (51413).to_bytes(2, "big")
            resp = struct.pack(">i", 1) + tx + struct.pack(">iii", 1800, 4, 2) + peers
            self.transport.sendto(resp, addr)


@contextlib.asynccontextmanager
async def _tracker(mode="normal"):
    loop = asyncio.get_running_loop()
    transport, protocol = await loop.create_datagram_endpoint(
        lambda: _MockTracker(mode), local_addr=("127.0.0.1", 0)
    )
    host, port = transport.get_extra_info("sockname")[:2]
    try:
        yield protocol, f"udp://{host}:{port}/announce"
    finally:
        transport.close()


def test_connection_request_bytes():
    request = ConnectionRequest(transaction_id=0x01020304)
    assert request.to_bytes() == bytes.fromhex(
        "0000041727101980" "00000000" "01020304"
    )


def test_connection_response_parse():
    data = struct.pack(">iiq", 0, -5, CONNECTION_ID)
    response = ConnectionResponse.from_bytes(data)
    assert response == ConnectionResponse(0, -5, CONNECTION_ID)


def test_connection_response_too_short():
    with pytest.raises(TrackerError) as info:
        ConnectionResponse.from_bytes(bytes(15))
    assert info.value.kind is TrackerError.Kind.TOO_SHORT


def test_announce_request_layout():
    request = AnnounceRequest(
        connection_id=CONNECTION_ID,
        tx_id=7,
        info_hash=INFO_HASH,
        peer_id=PeerID(b"-RS" + bytes(17)),
        downloaded=10,
        left=20,
        uploaded=30,
        event=Event.STARTED,
        port=6881,
    )
    data = request.to_bytes()
    assert len(data) == 98
    assert data[0:8] == CONNECTION_ID.to_bytes(8, "big")
    assert data[8:12] == (1).to_bytes(4, "big")
    assert data[12:16] == (7).to_bytes(4, "big")
    assert data[16:36] == bytes(INFO_HASH)
    assert data[36:39] == b"-RS"
    assert data[56:64] == (10).to_bytes(8, "big")
    assert data[64:72] == (20).to_bytes(8, "big")
    assert data[72:80] == (30).to_bytes(8, "big")
    assert data[80:84] == (2).to_bytes(4, "big")
    assert data[84:92] == bytes(8)
    assert data[92:96] == b"\xff\xff\xff\xff"
    assert data[96:98] == (6881).to_bytes(2, "big")


def test_announce_response_parse_ignores_partial_peer():
    data = struct.pack(">iiiii", 1, 9, 1800, 4, 2)
    data += bytes([1, 2, 3, 4, 0x1A, 0xE1]) + b"\x09\x09"
    response = AnnounceResponse.from_bytes(data)
    assert response.action == 1
    assert response.transaction_id == 9
    assert response.interval == 1800
    assert response.leechers == 4
    assert response.seeders == 2
    assert response.peers == [("1.2.3.4", 6881)]


def test_announce_response_too_short():
    with pytest.raises(TrackerError) as info:
        AnnounceResponse.from_bytes(bytes(19))
    assert info.value.kind is TrackerError.Kind.TOO_SHORT


@pytest.mark.asyncio
async def test_udp_integration_basic_announce():
    async with _tracker() as (_, url):
        async with await UdpTrackerClient.start() as client:
            resp = await client.announce(_params(), url)
    assert resp.interval == 1800
    assert resp.seeders == 2
    assert resp.leechers == 4
    assert resp.peers == [("1.2.3.4", 6881), ("5.6.7.8", 51413)]


@pytest.mark.asyncio
async def test_announce_uses_connection_id_from_tracker():
    async with _tracker() as (mock, url):
        async with await UdpTrackerClient.start() as client:
            await client.announce(_params(), url)
    announce = mock.received[-1]
    assert len(announce) == 98
    assert announce[0:8] == CONNECTION_ID.to_bytes(8, "big")
    assert announce[16:36] == bytes(INFO_HASH)
    assert announce[64:72] == (92063).to_bytes(8, "big")


@pytest.mark.asyncio
async def test_short_packet_keeps_waiting_for_real_answer():
    async with _tracker("short_first") as (_, url):
        async with await UdpTrackerClient.start() as client:
            client.retry_base = 5.0
            resp = await client.announce(_params(), url)
    assert resp.interval == 1800
    assert len(resp.peers) == 2


@pytest.mark.asyncio
async def test_silent_tracker_times_out_after_retries():
    async with _tracker("silent") as (mock, url):
        async with await UdpTrackerClient.start() as client:
            client.retry_base = 0.01
            client.max_retries = 1
            with pytest.raises(TrackerError) as info:
                await client.announce(_params(), url)
    assert info.value.kind is TrackerError.Kind.TIMEOUT
    assert len(mock.received) == 2


@pytest.mark.asyncio
async def test_mismatched_transaction_id_is_ignored():
    async with _tracker("wrong_txn") as (_, url):
        async with await UdpTrackerClient.start() as client:
            client.retry_base = 0.01
            client.max_retries = 0
            with pytest.raises(TrackerError) as info:
                await client.announce(_params(), url)
    assert info.value.kind is TrackerError.Kind.TIMEOUT


@pytest.mark.asyncio
async def test_url_without_port_is_invalid():
    async with await UdpTrackerClient.start() as client:
        with pytest.raises(TrackerError) as info:
            await client.announce(_params(), "udp://127.0.0.1/announce")
    assert info.value.kind is TrackerError.Kind.INVALID_URL