"""On-disk cache of individual blocks, keyed by blk file and offset."""

from __future__ import annotations

import os
import shutil
import tempfile
import threading


class BlockCacheError(OSError):
    """Raised when a block cache operation fails."""


class DiskBlockCache:
    """Stores each block as ``<dir>/<blk file>/<offset>``."""

    def __init__(self, directory: str | os.PathLike, max_bytes: int) -> None:
        self.directory = os.fspath(directory)
        self.max_bytes = max_bytes
        self._lock = threading.Lock()
        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as exc:
            raise BlockCacheError(f"blockcache: mkdir {self.directory!r}: {exc}") from exc

    def _block_path(self, blk_file: str, file_offset: int) -> str:
        return os.path.join(self.directory, blk_file, str(file_offset))

    def store_block(self, blk_file: str, file_offset: int, data: bytes) -> None:
        """Write a block atomically via a temp file and rename."""
        with self._lock:
            sub_dir = os.path.join(self.directory, blk_file)
            try:
                os.makedirs(sub_dir, exist_ok=True)
            except OSError as exc:
                raise BlockCacheError(f"blockcache: mkdir sub-dir {sub_dir!r}: {exc}") from exc

            fd, tmp_name = tempfile.mkstemp(dir=sub_dir, prefix=".tmp-")
            dest = self._block_path(blk_file, file_offset)
            try:
                with os.fdopen(fd, "wb") as tmp:
                    tmp.write(data)
                os.replace(tmp_name, dest)
            except OSError as exc:
                try:
                    os.remove(tmp_name)
                except FileNotFoundError:
                    pass
                raise BlockCacheError(f"blockcache: store {dest!r}: {exc}") from exc

    def get_block(self, blk_file: str, file_offset: int) -> bytes:
        """Return the cached block data."""
        path = self._block_path(blk_file, file_offset)
        with self._lock:
            try:
                with open(path, "rb") as f:
                    return f.read()
            except OSError as exc:
                raise BlockCacheError(f"blockcache: read {path!r}: {exc}") from exc

    def has_block(self, blk_file: str, file_offset: int) -> bool:
        """Whether the block is cached."""
        with self._lock:
            return os.path.exists(self._block_path(blk_file, file_offset))

    def remove_file(self, blk_file: str) -> None:
        """Drop every cached block of one blk file."""
        path = os.path.join(self.directory, blk_file)
        with self._lock:
            try:
                shutil.rmtree(path)
            except FileNotFoundError:
                pass
            except OSError as exc:
                raise BlockCacheError(f"blockcache: remove {path!r}: {exc}") from exc

    def usage(self) -> tuple[int, int]:
        """Return ``(bytes used, capacity)``."""
        total = 0
        with self._lock:
            for root, _dirs, files in os.walk(self.directory):
                for name in files:
                    try:
                        total += os.path.getsize(os.path.join(root, name))
                    except OSError:
                        continue
        return total, self.max_bytes