"""Blockmap files: an index of block positions inside a blk*.dat file.

Binary layout (all integers little-endian):

* header, 16 bytes: magic (4) + version (2) + entry count (4) + reserved (6)
* entries, 44 bytes each, sorted by file offset ascending:
  block hash (32) + file offset (8) + block data size (4)
"""

from __future__ import annotations

import bisect
import hashlib
import os
import struct
import tempfile
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

MAGIC = 0x424D4150  # "BMAP" in little-endian
VERSION = 1
HEADER_SIZE = 16
ENTRY_SIZE = 44
MAX_ENTRIES = 1_000_000
PREAMBLE_SIZE = 8
BLOCK_HEADER_SIZE = 80

_HEADER = struct.Struct("<IHI6x")
_ENTRY = struct.Struct("<32sqI")
_PREAMBLE = struct.Struct("<II")
_SUFFIX = ".blockmap"


class BlockmapError(ValueError):
    """Raised for malformed blockmap or blk data."""


@dataclass(frozen=True)
class BlockmapEntry:
    """One block inside a blk file.

    ``file_offset`` points at the 8-byte preamble; ``block_data_size``
    excludes that preamble.
    """

    block_hash: bytes
    file_offset: int
    block_data_size: int

    def __post_init__(self) -> None:
        if len(self.block_hash) != 32:
            raise BlockmapError(
                f"block hash must be 32 bytes, got {len(self.block_hash)}"
            )

    @property
    def end(self) -> int:
        """Offset one past the last byte covered by this entry."""
        return self.file_offset + PREAMBLE_SIZE + self.block_data_size


@dataclass
class Blockmap:
    """In-memory blockmap; entries are kept sorted by file offset."""

    filename: str = ""
    entries: list[BlockmapEntry] = field(default_factory=list)

    def find_block(self, offset: int) -> Optional[BlockmapEntry]:
        """Return the entry whose byte range contains ``offset``, or None."""
        idx = bisect.bisect_right(self.entries, offset, key=lambda e: e.end)
        if idx >= len(self.entries):
            return None
        entry = self.entries[idx]
        if entry.file_offset <= offset < entry.end:
            return entry
        return None

    def find_blocks(self, offset: int, length: int) -> list[BlockmapEntry]:
        """Return all entries overlapping ``[offset, offset + length)``."""
        range_end = offset + length
        return [
            e for e in self.entries if e.file_offset < range_end and e.end > offset
        ]


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if data is None or len(data) != size:
        got = 0 if data is None else len(data)
        raise BlockmapError(f"read {what}: unexpected end of data ({got} of {size} bytes)")
    return data


def read(stream: BinaryIO) -> Blockmap:
    """Parse a binary blockmap from a binary stream."""
    header = _read_exact(stream, HEADER_SIZE, "header")
    magic, version, count = _HEADER.unpack(header)
    if magic != MAGIC:
        raise BlockmapError(
            f"invalid blockmap magic: got 0x{magic:08X}, want 0x{MAGIC:08X}"
        )
    if version != VERSION:
        raise BlockmapError(f"unsupported blockmap version: {version}")
    if count >= MAX_ENTRIES:
        raise BlockmapError(f"entry count too large: {count}")

    entries = []
    for i in range(count):
        raw = _read_exact(stream, ENTRY_SIZE, f"entry {i}")
        block_hash, file_offset, size = _ENTRY.unpack(raw)
        entries.append(BlockmapEntry(block_hash, file_offset, size))

    if any(b.file_offset < a.file_offset for a, b in zip(entries, entries[1:])):
        raise BlockmapError("blockmap entries not sorted by file offset")

    return Blockmap(entries=entries)


def read_file(path: str | os.PathLike) -> Blockmap:
    """Read a blockmap file; the filename has any ``.blockmap`` suffix removed."""
    with open(path, "rb") as f:
        bm = read(f)
    name = os.path.basename(os.fspath(path))
    if len(name) > len(_SUFFIX) and name.endswith(_SUFFIX):
        name = name[: -len(_SUFFIX)]
    bm.filename = name
    return bm


def write(stream: BinaryIO, blockmap: Optional[Blockmap]) -> None:
    """Serialize ``blockmap`` to a binary stream, entries sorted by offset."""
    if blockmap is None:
        raise BlockmapError("blockmap is None")
    entries = sorted(blockmap.entries, key=lambda e: e.file_offset)
    stream.write(_HEADER.pack(MAGIC, VERSION, len(entries)))
    for e in entries:
        stream.write(_ENTRY.pack(e.block_hash, e.file_offset, e.block_data_size))


def write_file(path: str | os.PathLike, blockmap: Optional[Blockmap]) -> None:
    """Write a blockmap atomically (temp file + rename), creating parent dirs."""
    path = os.fspath(path)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=directory, prefix=os.path.basename(path) + ".tmp."
    )
    try:
        with os.fdopen(fd, "wb") as tmp:
            write(tmp, blockmap)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.remove(tmp_name)
        except FileNotFoundError:
            pass
        raise


def _sha256d(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def scan_blk_file(path: str | os.PathLike, network_magic: int) -> Blockmap:
    """Scan a blk file and return the blockmap of every block in it.

    Each block is a preamble (network magic + data size) followed by the
    block data, whose first 80 bytes are the header that is hashed.
    """
    path = os.fspath(path)
    bm = Blockmap(filename=os.path.basename(path))
    with open(path, "rb") as f:
        file_size = os.fstat(f.fileno()).st_size
        offset = 0
        while offset < file_size:
            remaining = file_size - offset
            if remaining < PREAMBLE_SIZE:
                raise BlockmapError(
                    f"truncated preamble at offset {offset}: need 8 bytes, "
                    f"only {remaining} remaining"
                )
            f.seek(offset)
            magic, block_size = _PREAMBLE.unpack(f.read(PREAMBLE_SIZE))
            if magic != network_magic:
                raise BlockmapError(
                    f"invalid magic at offset {offset}: got 0x{magic:08X}, "
                    f"expected 0x{network_magic:08X}"
                )
            after = file_size - (offset + PREAMBLE_SIZE)
            if block_size > after:
                raise BlockmapError(
                    f"truncated block at offset {offset}: preamble claims "
                    f"{block_size} bytes but only {after} remain after preamble"
                )
            if block_size < BLOCK_HEADER_SIZE:
                raise BlockmapError(
                    f"block at offset {offset} has data size {block_size}, "
                    f"need at least 80 bytes for header"
                )
            header = f.read(BLOCK_HEADER_SIZE)
            bm.entries.append(BlockmapEntry(_sha256d(header), offset, block_size))
            offset += PREAMBLE_SIZE + block_size
    return bm