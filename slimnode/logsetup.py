"""Root logger setup driven by the ``general.log-level`` setting."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Sequence, TextIO

from slimnode.config import ConfigError, load

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_FORMAT = "time=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s"


def parse_log_level(level: str) -> int:
    """Map a level name (case-insensitive, blank means info) to a logging level."""
    try:
        return _LEVELS[level.strip().lower()]
    except KeyError:
        raise ValueError(
            f"invalid general.log-level {level!r}: must be one of debug, info, warn, error"
        ) from None


def configure_logging(level: str, stream: Optional[TextIO] = None) -> None:
    """Replace the root logger's handlers with one writing to ``stream``."""
    parsed = parse_log_level(level)
    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(parsed)


def configure_logging_from_args(
    args: Optional[Sequence[str]] = None, stream: Optional[TextIO] = None
) -> None:
    """Load the configuration from ``args`` and apply its log level."""
    try:
        cfg = load(args)
    except ConfigError as exc:
        raise ConfigError(f"loading config for logging: {exc}") from exc
    configure_logging(cfg.general.log_level, stream)