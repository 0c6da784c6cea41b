"""Types shared by the tracker clients: requests, responses and errors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional

from torrentkit.types import InfoHash, PeerID


class TrackerError(Exception):
    """Raised when announcing to a tracker fails."""

    class Kind(Enum):
        NETWORK = "Network error: {0}"
        HTTP = "HTTP error: {0}"
        URL_PARSE = "URL parse error: {0}"
        INVALID_RESPONSE = "Invalid tracker response: {0}"
        TIMEOUT = "Connection timeout"
        INVALID_SCHEME = "Invalid announce URL scheme: {0}"
        TRACKER_FAILURE = "Tracker returned error: {0}"
        UDP_CONNECTION_FAILED = "UDP connection failed"
        TRANSACTION_MISMATCH = "Transaction ID mismatch"
        BENCODE = "BencodeError {0}"
        INVALID_STRING = "Invalid string"
        INVALID_URL = "Invalid Url {0}"
        TOO_SHORT = "Packet is too short"

    def __init__(self, kind: "TrackerError.Kind", detail: Any = None) -> None:
        template = kind.value
        if "{0}" in template and detail is None:
            raise TypeError(f"{kind.name} needs a detail")
        super().__init__(template.format(detail))
        self.kind = kind
        self.detail = detail


@dataclass
class TrackerResponse:
    """What a tracker answered to an announce."""

    peers: list[tuple[str, int]] = field(default_factory=list)
    interval: int = 0
    leechers: int = 0
    seeders: int = 0


class Action(IntEnum):
    """Action codes of the UDP tracker protocol."""

    CONNECT = 0
    ANNOUNCE = 1
    SCRAPE = 2
    ERROR = 3


class Event(IntEnum):
    """Event reported with an announce."""

    NONE = 0
    COMPLETED = 1
    STARTED = 2
    STOPPED = 3

    def query_value(self) -> Optional[str]:
        """The value of the HTTP ``event`` parameter, ``None`` for no event."""
        if self is Event.NONE:
            return None
        return self.name.lower()


@dataclass
class AnnounceParams:
    """Everything a client tells a tracker when it announces."""

    info_hash: InfoHash
    peer_id: PeerID
    port: int
    uploaded: int
    downloaded: int
    left: int
    event: Event