"""BitTorrent bencode, metainfo, peer wire messages and HTTP/UDP tracker clients."""

__version__ = "0.1.0"