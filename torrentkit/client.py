"""Client state: identity, listening port and per-torrent sessions."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto

from torrentkit.types import InfoHash, PeerID

PORT = 6881

_CLIENT_PREFIX = b"-RS"


def generate_peer_id() -> PeerID:
    """Make a peer id: the client prefix followed by random bytes."""
    return PeerID(_CLIENT_PREFIX + os.urandom(20 - len(_CLIENT_PREFIX)))


class CoreError(Exception):
    """Base error of the core client."""


class DiskError(CoreError):
    """A failure while reading or writing torrent data on disk."""


class ClientCommand(Enum):
    """Commands the client accepts."""

    ADD_TORRENT = auto()


@dataclass
class TorrentSession:
    """State kept for one active torrent."""

    info_hash: InfoHash
    port: int = PORT
    last_announce: float | None = None


@dataclass
class BittorrentClient:
    """A client with its peer id, port and the torrents it manages."""

    peer_id: PeerID = field(default_factory=generate_peer_id)
    port: int = PORT
    torrents: dict[InfoHash, TorrentSession] = field(default_factory=dict)