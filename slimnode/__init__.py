"""Blockmaps, a per-block disk cache, configuration and daemon helpers for a storage-light Bitcoin node."""

__version__ = "0.1.0"