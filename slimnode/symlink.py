"""Linking the Bitcoin data directory's blocks/index to the local index."""

from __future__ import annotations

import os
import stat

from slimnode.config import Config


class SymlinkError(OSError):
    """Raised when the blocks/index symlink cannot be put in place."""


def ensure_blocks_index_symlink(cfg: Config) -> str:
    """Make ``<bitcoin-datadir>/blocks/index`` a symlink to ``<local-dir>/index``.

    Bitcoin Core always reads ``blocks/index`` from its data directory, so
    the link lets it find the index kept in the local directory. Does
    nothing if the correct link already exists. Returns the link path.
    """
    source = os.path.join(cfg.general.local_dir, "index")
    link_path = os.path.join(cfg.general.bitcoin_data_dir, "blocks", "index")

    if not os.path.exists(source):
        raise SymlinkError(f"source index directory does not exist: {source}")

    try:
        os.makedirs(os.path.dirname(link_path), exist_ok=True)
    except OSError as exc:
        raise SymlinkError(f"creating parent directory: {exc}") from exc

    try:
        existing = os.lstat(link_path)
    except FileNotFoundError:
        existing = None

    if existing is not None:
        if stat.S_ISLNK(existing.st_mode):
            try:
                target = os.readlink(link_path)
            except OSError as exc:
                raise SymlinkError(f"reading existing symlink: {exc}") from exc
            if target == source:
                print(f"blocks/index symlink already exists: {link_path} -> {source}")
                return link_path
            raise SymlinkError(
                f"symlink {link_path} already points to {target} "
                f"(expected {source}) - remove it manually to fix"
            )
        raise SymlinkError(
            f"{link_path} already exists and is not a symlink - "
            "back it up and remove it to proceed"
        )

    try:
        os.symlink(source, link_path)
    except OSError as exc:
        raise SymlinkError(f"creating symlink: {exc}") from exc
    print(f"Created blocks/index symlink: {link_path} -> {source}")
    return link_path