# torrentkit

Building blocks for BitTorrent clients:

- `torrentkit.bencode`: decode and encode bencoded data.
- `torrentkit.types`: the 20-byte `InfoHash` and `PeerID` identifiers.
- `torrentkit.metainfo`: parse `.torrent` files into `TorrentInfo`, including the info hash.
- `torrentkit.peer_protocol`: the peer handshake and the length-prefixed wire messages (`MessageCodec`).
- `torrentkit.tracker_types`: `AnnounceParams`, `TrackerResponse`, `Event`, `Action` and `TrackerError`.
- `torrentkit.http_tracker` and `torrentkit.udp_tracker`: announce to HTTP(S) and UDP trackers.
- `torrentkit.client`: `generate_peer_id()` and the plain state records `BittorrentClient` and `TorrentSession`.

## Installation

```
pip install torrentkit
```

To run the tests as well:

```
pip install "torrentkit[test]"
pytest
```

## Command line

Print the parsed metainfo and info hash of a torrent file:

```
torrentkit path/to/file.torrent
```

It exits with status 1 and prints the error if the file cannot be read or parsed.

## Bencode

```python
from torrentkit.bencode import decode, encode

value = decode(b"d3:foo3:bar5:helloi52ee")
# {b"foo": b"bar", b"hello": 52}
assert encode(value) == b"d3:foo3:bar5:helloi52ee"
```

`encode` also accepts `str` (as UTF-8), tuples, dictionaries with `str`
keys and any object with a `to_bencode()` method. Malformed input to
`decode` raises `BencodeError`; its `kind` attribute is a `BencodeErrorKind`
that names the part that failed to parse.

## Reading a torrent

```python
from torrentkit.metainfo import parse_torrent_from_file

torrent = parse_torrent_from_file("sample.torrent")
print(torrent.info_hash.to_hex())
print(torrent.total_size(), torrent.num_pieces())
for url in torrent.all_trackers():
    print(url)
```

`parse_torrent(data)` does the same for bytes already in memory. An invalid
or incomplete file raises `TorrentParseError`.

## Announcing to trackers

```python
import asyncio

from torrentkit.client import generate_peer_id
from torrentkit.http_tracker import HttpTrackerClient
from torrentkit.metainfo import parse_torrent_from_file
from torrentkit.tracker_types import AnnounceParams, Event


async def run() -> None:
    torrent = parse_torrent_from_file("sample.torrent")
    params = AnnounceParams(
        info_hash=torrent.info_hash,
        peer_id=generate_peer_id(),
        port=6881,
        uploaded=0,
        downloaded=0,
        left=torrent.total_size(),
        event=Event.STARTED,
    )
    async with HttpTrackerClient() as client:
        response = await client.announce(params, torrent.announce)
    print(response.seeders, response.leechers, response.peers)


asyncio.run(run())
```

For `udp://` trackers, `await UdpTrackerClient.start()` binds a socket and
returns a client whose `announce` takes the same arguments; use it with
`async with` or call `close()` when done. It follows the connect-then-announce
exchange, reuses a connection id for 60 seconds, and resends a request after
15 · 2ⁿ seconds, up to 8 retries. Tracker failures raise `TrackerError`,
whose `kind` says what went wrong.

## Peer wire protocol

```python
from torrentkit.client import generate_peer_id
from torrentkit.peer_protocol import Handshake, Have, MessageCodec
from torrentkit.types import InfoHash

info_hash = InfoHash(bytes(20))
handshake = Handshake.create(generate_peer_id(), info_hash)
wire = handshake.to_bytes()  # 68 bytes
assert Handshake.from_bytes(wire) == handshake

codec = MessageCodec()
buffer = bytearray(codec.encode(Have(piece_index=3)))
message = codec.decode(buffer)  # Have(piece_index=3), consumed from buffer
```

`MessageCodec.decode` returns `None` while the buffer holds no complete
message, and raises `ProtocolError` for unknown or malformed messages.

## What it does not do

torrentkit reads torrent files, frames peer messages and announces to
trackers one at a time. It does not connect to peers, download or upload
pieces, verify or store data on disk, or scrape trackers. There is no
component that works through a torrent's tracker list on its own; call
`announce` for each URL from `all_trackers()` yourself. Extension-protocol
messages are not decoded: `ExtendedHandshake` only holds their fields.