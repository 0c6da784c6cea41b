"""Announcing to HTTP trackers and reading their bencoded answers."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Optional
from urllib.parse import quote_plus, urlsplit, urlunsplit

import httpx

from torrentkit import bencode
from torrentkit.bencode import BencodeError
from torrentkit.tracker_types import AnnounceParams, TrackerError, TrackerResponse

logger = logging.getLogger(__name__)

DEFAULT_ANNOUNCE_INTERVAL = 20
REQUEST_TIMEOUT = 15.0

_KEY_FAILURE_REASON = b"failure reason"
_KEY_WARNING_MESSAGE = b"warning message"
_KEY_INTERVAL = b"interval"
_KEY_COMPLETE = b"complete"
_KEY_INCOMPLETE = b"incomplete"
_KEY_PORT = b"port"
_KEY_IP = b"IP"
_KEY_PEERS = b"peers"

_COMPACT_PEER_LEN = 6


def _as_i32(value: int) -> int:
    return (value + 2**31) % 2**32 - 2**31


def _as_u16(value: int) -> int:
    return value & 0xFFFF


def _percent_encode_all(raw: bytes) -> str:
    return "".join(f"%{byte:02X}" for byte in raw)


def build_announce_url(url: str, params: AnnounceParams) -> str:
    """The tracker URL with the announce parameters as its query.

    Any query already on ``url`` is replaced.  Every byte of the info hash
    and peer id is percent-encoded; other values are form-encoded.
    """
    pairs: list[tuple[str, bytes]] = [
        ("info_hash", bytes(params.info_hash)),
        ("peer_id", bytes(params.peer_id)),
        ("port", str(params.port).encode()),
        ("uploaded", str(params.uploaded).encode()),
        ("downloaded", str(params.downloaded).encode()),
        ("left", str(params.left).encode()),
        ("compact", b"1"),
    ]
    event = params.event.query_value()
    if event is not None:
        pairs.append(("event", event.encode()))

    query = "&".join(
        f"{key}={_percent_encode_all(value) if key in ('info_hash', 'peer_id') else quote_plus(value)}"
        for key, value in pairs
    )

    parts = urlsplit(url)
    path = parts.path or ("/" if parts.netloc else "")
    return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))


def _get_bytes(d: dict, key: bytes) -> Optional[bytes]:
    value = d.get(key)
    return value if isinstance(value, bytes) else None


def _get_str(d: dict, key: bytes) -> Optional[str]:
    raw = _get_bytes(d, key)
    if raw is None:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _get_int(d: dict, key: bytes) -> Optional[int]:
    value = d.get(key)
    return value if isinstance(value, int) else None


def _invalid(message: str) -> TrackerError:
    return TrackerError(TrackerError.Kind.INVALID_RESPONSE, message)


def parse_peers(response: dict[bytes, Any]) -> list[tuple[str, int]]:
    """Peers from a decoded announce answer, in compact or dictionary form."""
    peers = response.get(_KEY_PEERS)
    if isinstance(peers, bytes):
        if len(peers) % _COMPACT_PEER_LEN:
            raise _invalid("Invalid compact peers format")
        return [
            (
                str(ipaddress.IPv4Address(peers[i : i + 4])),
                int.from_bytes(peers[i + 4 : i + 6], "big"),
            )
            for i in range(0, len(peers), _COMPACT_PEER_LEN)
        ]
    if isinstance(peers, list):
        return [_parse_peer_entry(entry) for entry in peers]
    raise _invalid("missing peers field")


def _parse_peer_entry(entry: Any) -> tuple[str, int]:
    if not isinstance(entry, dict):
        raise _invalid("Expected dict in peer list")
    ip_text = _get_str(entry, _KEY_IP)
    if ip_text is None:
        raise _invalid("Missing or invalid IP")
    try:
        ip = ipaddress.ip_address(ip_text)
    except ValueError:
        raise _invalid("Invalid IP format") from None
    port = _get_int(entry, _KEY_PORT)
    if port is None:
        raise _invalid("Missing or invalid port")
    return str(ip), _as_u16(port)


def parse_announce_response(data: bytes) -> TrackerResponse:
    """Turn the body of a tracker's answer into a :class:`TrackerResponse`."""
    try:
        value = bencode.decode(data)
    except BencodeError as exc:
        raise TrackerError(TrackerError.Kind.BENCODE, exc) from exc
    if not isinstance(value, dict):
        raise _invalid("Info must be a dictionary")

    failure = _get_str(value, _KEY_FAILURE_REASON)
    if failure is not None:
        raise TrackerError(TrackerError.Kind.TRACKER_FAILURE, failure)
    warning = _get_str(value, _KEY_WARNING_MESSAGE)
    if warning is not None:
        logger.warning("tracker warning: %s", warning)

    interval = _get_int(value, _KEY_INTERVAL)
    complete = _get_int(value, _KEY_COMPLETE)
    incomplete = _get_int(value, _KEY_INCOMPLETE)

    return TrackerResponse(
        peers=parse_peers(value),
        interval=_as_i32(DEFAULT_ANNOUNCE_INTERVAL if interval is None else interval),
        leechers=_as_i32(incomplete or 0),
        seeders=_as_i32(complete or 0),
    )


class HttpTrackerClient:
    """Announces to trackers reached over HTTP or HTTPS."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    async def announce(self, params: AnnounceParams, tracker_url: str) -> TrackerResponse:
        """Send an announce to ``tracker_url`` and parse the answer."""
        url = build_announce_url(str(tracker_url), params)
        logger.debug("Announcing to tracker URL: %s", url)
        try:
            response = await self._client.get(url)
            body = response.content
        except httpx.HTTPError as exc:
            raise TrackerError(TrackerError.Kind.HTTP, exc) from exc
        return parse_announce_response(body)

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> "HttpTrackerClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()