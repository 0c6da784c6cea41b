"""Command that prints the contents and info hash of a torrent file."""

from __future__ import annotations

import argparse
import sys

from torrentkit.metainfo import TorrentParseError, parse_torrent_from_file

DEFAULT_TORRENT = "../sample_torrents/big-buck-bunny.torrent"


def main(argv: list[str] | None = None) -> int:
    """Parse a torrent file and print what it holds."""
    parser = argparse.ArgumentParser(description="Show a torrent file's metainfo.")
    parser.add_argument("torrent", nargs="?", default=DEFAULT_TORRENT)
    args = parser.parse_args(argv)

    print(f"reading from {args.torrent}")
    try:
        torrent = parse_torrent_from_file(args.torrent)
    except TorrentParseError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    print(f"torrent file: {torrent!r}")
    print(f'info_hash:"{torrent.info_hash.to_hex()}"')
    return 0


if __name__ == "__main__":
    sys.exit(main())