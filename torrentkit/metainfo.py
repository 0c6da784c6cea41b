"""Reading ``.torrent`` metainfo files."""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Union

from torrentkit import bencode
from torrentkit.bencode import BencodeError
from torrentkit.types import InfoHash

PIECE_HASH_LEN = 20

_KEY_INFO = b"info"
_KEY_ANNOUNCE = b"announce"
_KEY_ANNOUNCE_LIST = b"announce-list"
_KEY_CREATION_DATE = b"creation date"
_KEY_COMMENT = b"comment"
_KEY_CREATED_BY = b"created by"
_KEY_ENCODING = b"encoding"

_KEY_PIECE_LENGTH = b"piece length"
_KEY_PIECES = b"pieces"
_KEY_PRIVATE = b"private"
_KEY_NAME = b"name"
_KEY_LENGTH = b"length"
_KEY_MD5SUM = b"md5sum"
_KEY_FILES = b"files"
_KEY_PATH = b"path"


class TorrentParseError(ValueError):
    """Raised when a torrent file cannot be read or is malformed."""


def _missing_field(name: str) -> TorrentParseError:
    return TorrentParseError(f"Missing required field: {name}")


def _invalid_field(message: str) -> TorrentParseError:
    return TorrentParseError(f"Invalid field type: {message}")


def _invalid_utf8() -> TorrentParseError:
    return TorrentParseError("Invalid UTF-8 string")


@dataclass
class FileInfo:
    """One file of a multi-file torrent."""

    length: int
    path: PurePosixPath
    md5sum: str | None = None

    def filename(self) -> str | None:
        """Last component of the path."""
        return self.path.name or None

    def directory_path(self) -> PurePosixPath | None:
        """The path without its last component."""
        if not self.path.parts:
            return None
        return PurePosixPath(*self.path.parts[:-1])

    def extension(self) -> str | None:
        """The file extension without the dot."""
        suffix = self.path.suffix
        return suffix[1:] if suffix else None

    def path_str(self) -> str:
        """The full path as a string."""
        return str(self.path)

    def path_components(self) -> list[str]:
        """The path split into its components."""
        return list(self.path.parts)


@dataclass
class SingleFile:
    """A torrent holding exactly one file."""

    name: str
    size: int
    md5sum: str | None = None

    def is_single_file(self) -> bool:
        return True

    def is_multi_file(self) -> bool:
        return False

    def length(self) -> int:
        """Length of the file in bytes."""
        return self.size


@dataclass
class MultiFile:
    """A torrent holding a directory of files."""

    name: str
    files: list[FileInfo] = field(default_factory=list)

    def is_single_file(self) -> bool:
        return False

    def is_multi_file(self) -> bool:
        return True

    def length(self) -> int:
        """Sum of the lengths of all files."""
        return sum(f.length for f in self.files)


FileMode = Union[SingleFile, MultiFile]


@dataclass
class Info:
    """The info dictionary of a torrent."""

    piece_length: int
    pieces: list[bytes]
    mode: FileMode
    private: int | None = None

    def to_bencode(self) -> dict[bytes, Any]:
        """The dictionary whose bencoding is hashed into the info hash."""
        return {
            _KEY_LENGTH: self.mode.length(),
            _KEY_NAME: self.mode.name.encode("utf-8"),
            _KEY_PIECE_LENGTH: self.piece_length,
            _KEY_PIECES: b"".join(self.pieces),
        }


@dataclass
class TorrentInfo:
    """The parsed contents of a ``.torrent`` file."""

    info: Info
    announce: str
    info_hash: InfoHash
    announce_list: list[list[str]] | None = None
    creation_date: int | None = None
    comment: str | None = None
    created_by: str | None = None
    encoding: str | None = None

    def total_size(self) -> int:
        """Total size in bytes of all files."""
        return self.info.mode.length()

    def num_pieces(self) -> int:
        """Number of pieces the content splits into."""
        if self.info.piece_length <= 0:
            return 0
        return max(0, math.ceil(self.total_size() / self.info.piece_length))

    def all_trackers(self) -> list[str]:
        """Primary tracker followed by the announce-list, without duplicates."""
        urls = [self.announce]
        for tier in self.announce_list or []:
            urls.extend(tier)
        return list(dict.fromkeys(urls))

    def is_private(self) -> bool:
        return self.info.private == 1


def parse_torrent_from_file(path: str | Path) -> TorrentInfo:
    """Read and parse a torrent file."""
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise TorrentParseError(f"IO error: {exc}") from exc
    return parse_torrent(data)


def parse_torrent(data: bytes) -> TorrentInfo:
    """Parse the raw bytes of a torrent file."""
    try:
        value = bencode.decode(data)
    except BencodeError as exc:
        raise TorrentParseError(f"Bencode error: {exc}") from exc
    return parse_torrent_from_bencode(value)


def parse_torrent_from_bencode(value: Any) -> TorrentInfo:
    """Build a :class:`TorrentInfo` from a decoded bencode value."""
    if not isinstance(value, dict):
        raise _invalid_field("Root must be a dictionary")

    announce = _get_string(value, _KEY_ANNOUNCE)
    if _KEY_INFO not in value:
        raise _missing_field("info")
    info = _parse_info(value[_KEY_INFO])
    info_hash = InfoHash(hashlib.sha1(bencode.encode(info)).digest())

    return TorrentInfo(
        info=info,
        announce=announce,
        info_hash=info_hash,
        announce_list=_parse_announce_list(value),
        creation_date=_get_optional_int(value, _KEY_CREATION_DATE),
        comment=_get_optional_string(value, _KEY_COMMENT),
        created_by=_get_optional_string(value, _KEY_CREATED_BY),
        encoding=_get_optional_string(value, _KEY_ENCODING),
    )


def _parse_info(value: Any) -> Info:
    if not isinstance(value, dict):
        raise _invalid_field("Info must be a dictionary")

    piece_length = _get_int(value, _KEY_PIECE_LENGTH)
    pieces = _split_pieces(_get_bytes(value, _KEY_PIECES))
    private = _get_optional_int(value, _KEY_PRIVATE)

    mode: FileMode
    if _KEY_FILES in value:
        name = _get_string(value, _KEY_NAME)
        mode = MultiFile(name=name, files=_parse_files(value[_KEY_FILES]))
    else:
        name = _get_string(value, _KEY_NAME)
        size = _get_int(value, _KEY_LENGTH)
        mode = SingleFile(
            name=name, size=size, md5sum=_get_optional_string(value, _KEY_MD5SUM)
        )
    return Info(piece_length=piece_length, pieces=pieces, mode=mode, private=private)


def _split_pieces(raw: bytes) -> list[bytes]:
    if len(raw) % PIECE_HASH_LEN:
        raise _invalid_field("Pieces length must be multiple of 20")
    return [raw[i : i + PIECE_HASH_LEN] for i in range(0, len(raw), PIECE_HASH_LEN)]


def _parse_files(value: Any) -> list[FileInfo]:
    if not isinstance(value, list):
        raise _invalid_field("Files must be a list")
    files = []
    for entry in value:
        if not isinstance(entry, dict):
            raise _invalid_field("File entry must be a dictionary")
        length = _get_int(entry, _KEY_LENGTH)
        md5sum = _get_optional_string(entry, _KEY_MD5SUM)
        files.append(FileInfo(length=length, path=_parse_path(entry), md5sum=md5sum))
    return files


def _parse_path(entry: dict) -> PurePosixPath:
    if _KEY_PATH not in entry:
        raise _missing_field("path")
    components = entry[_KEY_PATH]
    if not isinstance(components, list):
        raise _invalid_field("Path must be a list")
    parts = []
    for component in components:
        if not isinstance(component, bytes):
            raise _invalid_field("Path component must be bytes")
        parts.append(_utf8(component))
    return PurePosixPath(*parts)


def _parse_announce_list(root: dict) -> list[list[str]] | None:
    if _KEY_ANNOUNCE_LIST not in root:
        return None
    tiers = root[_KEY_ANNOUNCE_LIST]
    if not isinstance(tiers, list):
        raise _invalid_field("Announce-list must be a list")
    result = []
    for tier in tiers:
        if not isinstance(tier, list):
            raise _invalid_field("Announce-list tier must be a list")
        urls = []
        for url in tier:
            if not isinstance(url, bytes):
                raise _invalid_field("Announce URL must be bytes")
            urls.append(_utf8(url))
        result.append(urls)
    return result


def _utf8(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise _invalid_utf8() from None


def _key_name(key: bytes) -> str:
    return key.decode("utf-8", errors="replace")


def _get_bytes(d: dict, key: bytes) -> bytes:
    if key not in d:
        raise _missing_field(f"Key '{_key_name(key)}' not found")
    value = d[key]
    if not isinstance(value, bytes):
        raise _invalid_field(f"Expected bytes for key '{_key_name(key)}'")
    return value


def _get_string(d: dict, key: bytes) -> str:
    return _utf8(_get_bytes(d, key))


def _get_int(d: dict, key: bytes) -> int:
    if key not in d:
        raise _missing_field(f"Key '{_key_name(key)}' not found")
    value = d[key]
    if not isinstance(value, int):
        raise _invalid_field(f"Expected integer for key '{_key_name(key)}'")
    return value


def _get_optional_string(d: dict, key: bytes) -> str | None:
    value = d.get(key)
    if not isinstance(value, bytes):
        return None
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _get_optional_int(d: dict, key: bytes) -> int | None:
    value = d.get(key)
    return value if isinstance(value, int) else None