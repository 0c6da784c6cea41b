"""Announcing to trackers over the UDP tracker protocol."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import os
import socket
import struct
import time
from dataclasses import dataclass, field
from typing import Optional, Union
from urllib.parse import urlsplit

from torrentkit.tracker_types import (
    Action,
    AnnounceParams,
    Event,
    TrackerError,
    TrackerResponse,
)
from torrentkit.types import InfoHash, PeerID

logger = logging.getLogger(__name__)

PROTOCOL_ID = 0x41727101980
MAX_RETRIES = 8
RETRY_BASE_SECONDS = 15.0
CONNECTION_ID_EXPIRATION = 60.0

_CONNECT_REQUEST = struct.Struct(">Qii")
_CONNECT_RESPONSE = struct.Struct(">iiq")
_ANNOUNCE_REQUEST = struct.Struct(">qii20s20sqqqiIIiH")
_ANNOUNCE_HEADER = struct.Struct(">iiiii")
_COMPACT_PEER_LEN = 6


def _random_i32() -> int:
    return int.from_bytes(os.urandom(4), "big", signed=True)


@dataclass(frozen=True)
class ConnectionRequest:
    """First packet sent to a UDP tracker, asking for a connection id."""

    transaction_id: int = field(default_factory=_random_i32)
    action: Action = Action.CONNECT

    def to_bytes(self) -> bytes:
        return _CONNECT_REQUEST.pack(PROTOCOL_ID, int(self.action), self.transaction_id)


@dataclass(frozen=True)
class ConnectionResponse:
    """A tracker's answer to a connection request."""

    action: int
    transaction_id: int
    connection_id: int

    @classmethod
    def from_bytes(cls, data: bytes) -> "ConnectionResponse":
        """Parse the first 16 bytes of ``data``."""
        if len(data) < _CONNECT_RESPONSE.size:
            raise TrackerError(TrackerError.Kind.TOO_SHORT)
        return cls(*_CONNECT_RESPONSE.unpack_from(data))


@dataclass(frozen=True)
class AnnounceRequest:
    """A 98-byte announce packet."""

    connection_id: int
    tx_id: int
    info_hash: InfoHash
    peer_id: PeerID
    downloaded: int
    left: int
    uploaded: int
    event: Event
    port: int
    action: Action = Action.ANNOUNCE
    ip_address: ipaddress.IPv4Address = ipaddress.IPv4Address(0)
    key: int = 0
    num_want: int = -1

    def to_bytes(self) -> bytes:
        return _ANNOUNCE_REQUEST.pack(
            self.connection_id,
            int(self.action),
            self.tx_id,
            bytes(self.info_hash),
            bytes(self.peer_id),
            self.downloaded,
            self.left,
            self.uploaded,
            int(self.event),
            int(self.ip_address),
            self.key,
            self.num_want,
            self.port,
        )


@dataclass(frozen=True)
class AnnounceResponse:
    """A tracker's answer to an announce, with its compact peer list."""

    action: int
    transaction_id: int
    interval: int
    leechers: int
    seeders: int
    peers: list[tuple[str, int]]

    @classmethod
    def from_bytes(cls, data: bytes) -> "AnnounceResponse":
        """Parse a 20-byte header followed by 6-byte peers; extra bytes are ignored."""
        data = bytes(data)
        if len(data) < _ANNOUNCE_HEADER.size:
            raise TrackerError(TrackerError.Kind.TOO_SHORT)
        action, txn, interval, leechers, seeders = _ANNOUNCE_HEADER.unpack_from(data)
        body = data[_ANNOUNCE_HEADER.size :]
        usable = len(body) - len(body) % _COMPACT_PEER_LEN
        peers = [
            (
                str(ipaddress.IPv4Address(body[i : i + 4])),
                int.from_bytes(body[i + 4 : i + 6], "big"),
            )
            for i in range(0, usable, _COMPACT_PEER_LEN)
        ]
        return cls(action, txn, interval, leechers, seeders, peers)


@dataclass(frozen=True)
class _ConnectSent:
    transaction_id: int
    sent_at: float
    future: asyncio.Future


@dataclass(frozen=True)
class _ConnectReceived:
    connection_id: int
    received_at: float


@dataclass(frozen=True)
class _AnnounceSent:
    transaction_id: int
    connection_id: int
    future: asyncio.Future


_State = Union[_ConnectSent, _ConnectReceived, _AnnounceSent]
_Addr = tuple


def _resolve_future(future: asyncio.Future, result: object) -> None:
    if not future.done():
        future.set_result(result)


class _TrackerProtocol(asyncio.DatagramProtocol):
    def __init__(self, states: dict[_Addr, _State]) -> None:
        self._states = states

    def datagram_received(self, data: bytes, addr: _Addr) -> None:
        key = tuple(addr[:2])
        state = self._states.pop(key, None)
        if state is None:
            return
        if isinstance(state, _ConnectSent):
            try:
                response = ConnectionResponse.from_bytes(data)
            except TrackerError:
                self._states[key] = state
                logger.error("connect response from %s shorter than 16 bytes", key)
                return
            if (
                response.transaction_id == state.transaction_id
                and response.action == Action.CONNECT
            ):
                self._states[key] = _ConnectReceived(
                    response.connection_id, time.monotonic()
                )
                _resolve_future(state.future, response)
        elif isinstance(state, _AnnounceSent):
            try:
                announce = AnnounceResponse.from_bytes(data)
            except TrackerError:
                self._states[key] = state
                return
            if (
                announce.transaction_id == state.transaction_id
                and announce.action == Action.ANNOUNCE
            ):
                _resolve_future(state.future, announce)
        else:
            self._states[key] = state
            logger.warning("unexpected packet from %s", key)

    def error_received(self, exc: Exception) -> None:
        logger.warning("error receiving UDP packet: %s", exc)


class UdpTrackerClient:
    """Announces to trackers reached over UDP, sharing one socket."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        states: dict[_Addr, _State],
    ) -> None:
        self._transport = transport
        self._states = states
        self.retry_base = RETRY_BASE_SECONDS
        self.max_retries = MAX_RETRIES

    @classmethod
    async def start(cls) -> "UdpTrackerClient":
        """Bind a socket on a free port and start reading from it."""
        loop = asyncio.get_running_loop()
        states: dict[_Addr, _State] = {}
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _TrackerProtocol(states),
                local_addr=("0.0.0.0", 0),
            )
        except OSError as exc:
            raise TrackerError(TrackerError.Kind.NETWORK, exc) from exc
        return cls(transport, states)

    def close(self) -> None:
        """Close the socket and abandon pending requests."""
        self._transport.close()
        for state in self._states.values():
            if isinstance(state, (_ConnectSent, _AnnounceSent)):
                state.future.cancel()
        self._states.clear()

    async def __aenter__(self) -> "UdpTrackerClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    async def announce(self, params: AnnounceParams, tracker_url: str) -> TrackerResponse:
        """Connect to the tracker if needed, then announce and return its answer."""
        tracker = await self._resolve(str(tracker_url))
        connection_id = await self._connect(tracker)
        loop = asyncio.get_running_loop()
        for attempt in range(self.max_retries + 1):
            request = AnnounceRequest(
                connection_id=connection_id,
                tx_id=_random_i32(),
                info_hash=params.info_hash,
                peer_id=params.peer_id,
                downloaded=params.downloaded,
                left=params.left,
                uploaded=params.uploaded,
                event=params.event,
                port=params.port,
            )
            future: asyncio.Future = loop.create_future()
            self._states[tracker] = _AnnounceSent(request.tx_id, connection_id, future)
            self._send(request.to_bytes(), tracker)
            try:
                response: AnnounceResponse = await asyncio.wait_for(
                    future, self._wait_for(attempt)
                )
            except asyncio.TimeoutError:
                logger.warning("announce timed out (attempt %d)", attempt + 1)
                continue
            return TrackerResponse(
                peers=response.peers,
                interval=response.interval,
                leechers=response.leechers,
                seeders=response.seeders,
            )
        raise TrackerError(TrackerError.Kind.TIMEOUT)

    def _wait_for(self, attempt: int) -> float:
        return self.retry_base * (1 << attempt)

    def _send(self, packet: bytes, tracker: _Addr) -> None:
        try:
            self._transport.sendto(packet, tracker)
        except OSError as exc:
            raise TrackerError(TrackerError.Kind.NETWORK, exc) from exc

    async def _resolve(self, url: str) -> _Addr:
        parts = urlsplit(url)
        try:
            host, port = parts.hostname, parts.port
        except ValueError:
            raise TrackerError(TrackerError.Kind.INVALID_URL, url) from None
        if not host or port is None:
            raise TrackerError(TrackerError.Kind.INVALID_URL, url)
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                host, port, family=socket.AF_INET, type=socket.SOCK_DGRAM
            )
        except OSError:
            raise TrackerError(TrackerError.Kind.INVALID_URL, url) from None
        if not infos:
            raise TrackerError(TrackerError.Kind.INVALID_URL, url)
        return tuple(infos[0][4][:2])

    async def _connect(self, tracker: _Addr) -> int:
        state = self._states.get(tracker)
        if (
            isinstance(state, _ConnectReceived)
            and time.monotonic() - state.received_at < CONNECTION_ID_EXPIRATION
        ):
            return state.connection_id

        loop = asyncio.get_running_loop()
        for attempt in range(self.max_retries + 1):
            request = ConnectionRequest()
            future: asyncio.Future = loop.create_future()
            self._states[tracker] = _ConnectSent(
                request.transaction_id, time.monotonic(), future
            )
            self._send(request.to_bytes(), tracker)
            try:
                response: ConnectionResponse = await asyncio.wait_for(
                    future, self._wait_for(attempt)
                )
            except asyncio.TimeoutError:
                logger.warning("connect request timed out (attempt %d)", attempt + 1)
                continue
            return response.connection_id
        raise TrackerError(TrackerError.Kind.TIMEOUT)