"""Configuration loading: INI file defaults overridden by command-line flags."""

from __future__ import annotations

import json
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

DEFAULT_CONFIG_PATH = "~/.slimnode/config.conf"

REMOTE_FETCH_MODES = ("auto", "file", "range")


class ConfigError(ValueError):
    """Raised when configuration cannot be loaded or is invalid."""


@dataclass
class GeneralConfig:
    """General settings."""

    chain: str = "mainnet"
    cache_dir: str = "~/.slimnode/cache"
    local_dir: str = "~/.slimnode/local"
    mount_point: str = ""
    bitcoin_data_dir: str = "~/.bitcoin"
    log_level: str = "info"
    remote_fetch_mode: str = "auto"
    auto_gap_tolerance_kb: int = 64
    auto_min_range_requests: int = 256
    auto_min_sequential_mb: int = 4
    auto_min_sequential_rate: float = 0.90
    auto_max_backward_seeks: int = 2
    auto_file_hint_ttl: timedelta = timedelta(minutes=10)
    auto_promotion_cooldown: timedelta = timedelta(seconds=30)


@dataclass
class CacheConfig:
    """Cache settings."""

    max_size_gb: int = 50
    min_keep_recent: int = 10


@dataclass
class ServerConfig:
    """Archive server settings."""

    url: str = ""
    request_timeout: timedelta = timedelta(seconds=30)
    retry_count: int = 3


@dataclass
class CompactConfig:
    """Compaction settings."""

    trigger: str = "auto"
    threshold: int = 85
    pre_download: bool = True


@dataclass
class Config:
    """All configuration."""

    config_file: str = DEFAULT_CONFIG_PATH
    general: GeneralConfig = field(default_factory=GeneralConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    compact: CompactConfig = field(default_factory=CompactConfig)


# --- durations -------------------------------------------------------------

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)([^\d.]+)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"10m"``, ``"1h30m"`` or ``"1.5s"``."""
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ConfigError(f'invalid duration "{text}"')

    total = Fraction(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if match is None:
            raise ConfigError(f'invalid duration "{text}"')
        number, unit = match.groups()
        if unit not in _UNIT_NANOS:
            raise ConfigError(f'unknown unit "{unit}" in duration "{text}"')
        total += Fraction(number) * _UNIT_NANOS[unit]
        pos = match.end()
    return timedelta(microseconds=sign * round(total / 1000))


def _format_duration(value: timedelta) -> str:
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        whole, frac = divmod(micros, 1_000)
        frac_text = f".{frac:03d}".rstrip("0") if frac else ""
        return f"{sign}{whole}{frac_text}ms"
    hours, rem = divmod(micros, 3600 * 1_000_000)
    minutes, rem = divmod(rem, 60 * 1_000_000)
    seconds, frac = divmod(rem, 1_000_000)
    frac_text = f".{frac:06d}".rstrip("0") if frac else ""
    out = f"{seconds}{frac_text}s"
    if hours or minutes:
        out = f"{minutes}m{out}"
    if hours:
        out = f"{hours}h{out}"
    return sign + out


# --- value converters ------------------------------------------------------

_INT_RE = re.compile(r"[+-]?\d+")
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f'invalid integer "{text}"')
    return int(text)


def _parse_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise ValueError(f'invalid number "{text}"') from None


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f'invalid boolean "{text}"')


# --- option table ----------------------------------------------------------


@dataclass(frozen=True)
class _Option:
    long: str
    section: Optional[str]
    attr: str
    convert: Callable[[str], Any]
    short: Optional[str] = None

    @property
    def is_bool(self) -> bool:
        return self.convert is _parse_bool


_OPTIONS = (
    _Option("config", None, "config_file", str, short="c"),
    _Option("general.chain", "general", "chain", str),
    _Option("general.cache-dir", "general", "cache_dir", str),
    _Option("general.local-dir", "general", "local_dir", str),
    _Option("general.mount-point", "general", "mount_point", str, short="m"),
    _Option("general.bitcoin-datadir", "general", "bitcoin_data_dir", str),
    _Option("general.log-level", "general", "log_level", str),
    _Option("general.remote-fetch-mode", "general", "remote_fetch_mode", str),
    _Option("general.auto-gap-tolerance-kb", "general", "auto_gap_tolerance_kb", _parse_int),
    _Option("general.auto-min-range-requests", "general", "auto_min_range_requests", _parse_int),
    _Option("general.auto-min-sequential-mb", "general", "auto_min_sequential_mb", _parse_int),
    _Option("general.auto-min-sequential-rate", "general", "auto_min_sequential_rate", _parse_float),
    _Option("general.auto-max-backward-seeks", "general", "auto_max_backward_seeks", _parse_int),
    _Option("general.auto-file-hint-ttl", "general", "auto_file_hint_ttl", parse_duration),
    _Option("general.auto-promotion-cooldown", "general", "auto_promotion_cooldown", parse_duration),
    _Option("cache.max-size-gb", "cache", "max_size_gb", _parse_int),
    _Option("cache.min-keep-recent", "cache", "min_keep_recent", _parse_int),
    _Option("server.url", "server", "url", str),
    _Option("server.request-timeout", "server", "request_timeout", parse_duration),
    _Option("server.retry-count", "server", "retry_count", _parse_int),
    _Option("compaction.trigger", "compact", "trigger", str),
    _Option("compaction.threshold", "compact", "threshold", _parse_int),
    _Option("compaction.pre-download", "compact", "pre_download", _parse_bool),
)
_BY_LONG = {opt.long: opt for opt in _OPTIONS}
_BY_SHORT = {opt.short: opt for opt in _OPTIONS if opt.short}

_SECTION_NAMESPACES = {
    "application options": "",
    "general": "general",
    "cache": "cache",
    "server": "server",
    "compaction": "compaction",
}


def _assign(cfg: Config, opt: _Option, raw: str, where: str) -> None:
    try:
        value = opt.convert(raw)
    except ValueError as exc:
        raise ConfigError(f"{where}: invalid argument for flag `--{opt.long}': {exc}") from exc
    if opt.section is None:
        value = _expand_home(value)
        target: Any = cfg
    else:
        target = getattr(cfg, opt.section)
    setattr(target, opt.attr, value)


# --- paths -----------------------------------------------------------------


def _home_dir() -> str:
    home = os.path.expanduser("~")
    if home == "~" or not home:
        raise ConfigError("failed to get home directory")
    return home


def _expand_home(path: str) -> str:
    if not path.startswith("~"):
        return path
    rest = path[1:].lstrip("/" + os.sep)
    return os.path.normpath(os.path.join(_home_dir(), rest))


# --- INI -------------------------------------------------------------------


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        try:
            return json.loads(value)
        except ValueError:
            return value[1:-1]
    return value


def _apply_ini(cfg: Config, path: str) -> None:
    prefix = f"failed to parse INI file {path}"
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"{prefix}: {exc}") from exc

    namespace: Optional[str] = ""
    for lineno, raw_line in enumerate(text.splitlines(), 1):
        line = raw_line.strip()
        if not line or line[0] in ";#":
            continue
        if line.startswith("["):
            if not line.endswith("]"):
                raise ConfigError(f"{prefix}: {path}:{lineno}: malformed section header")
            namespace = _SECTION_NAMESPACES.get(line[1:-1].strip().lower())
            continue
        key, sep, value = line.partition("=")
        if not sep:
            raise ConfigError(f"{prefix}: {path}:{lineno}: malformed key=value ({line})")
        if namespace is None:
            continue
        key = key.strip()
        opt = _BY_LONG.get(key)
        if opt is None and namespace:
            opt = _BY_LONG.get(f"{namespace}.{key}")
        if opt is None:
            continue
        value = _unquote(value.strip())
        if opt.is_bool and not value:
            value = "true"
        _assign(cfg, opt, value, f"{prefix}: {path}:{lineno}")


# --- command line ----------------------------------------------------------


def _looks_like_option(arg: str) -> bool:
    return len(arg) > 1 and arg[0] == "-" and not re.match(r"-\.?\d", arg)


def _apply_args(cfg: Config, args: Sequence[str]) -> None:
    i = 0
    while i < len(args):
        arg = args[i]
        i += 1
        if arg == "--":
            break
        if arg.startswith("--"):
            name, eq, value = arg[2:].partition("=")
            flag = f"--{name}"
            opt = _BY_LONG.get(name)
            has_value = bool(eq)
        elif _looks_like_option(arg):
            name, value = arg[1], arg[2:]
            flag = f"-{name}"
            opt = _BY_SHORT.get(name)
            has_value = bool(value)
        else:
            continue

        if name in ("help", "h"):
            raise ConfigError("parse failed: help requested")
        if opt is None:
            continue

        if opt.is_bool:
            if has_value:
                raise ConfigError(f"parse failed: bool flag `{flag}' cannot have an argument")
            value = "true"
        elif not has_value:
            if i >= len(args) or _looks_like_option(args[i]):
                raise ConfigError(f"parse failed: expected argument for flag `{flag}'")
            value = args[i]
            i += 1
        _assign(cfg, opt, value, "parse failed")


def _config_path_from_args(args: Sequence[str]) -> str:
    for i, arg in enumerate(args):
        if arg == "--config" and i + 1 < len(args):
            return args[i + 1]
        if arg.startswith("--config="):
            return arg[len("--config="):]
    return DEFAULT_CONFIG_PATH


# --- validation ------------------------------------------------------------


def _validate(cfg: Config) -> None:
    g = cfg.general
    if not g.mount_point:
        raise ConfigError("required field missing: mount-point")
    if not cfg.server.url:
        raise ConfigError("required field missing: server.url")
    if g.remote_fetch_mode not in REMOTE_FETCH_MODES:
        raise ConfigError(
            f"invalid general.remote-fetch-mode {json.dumps(g.remote_fetch_mode)}: "
            "must be one of auto, file, range"
        )
    if g.auto_gap_tolerance_kb < 0:
        raise ConfigError(
            f"invalid general.auto-gap-tolerance-kb {g.auto_gap_tolerance_kb}: must be >= 0"
        )
    if g.auto_min_range_requests < 1:
        raise ConfigError(
            f"invalid general.auto-min-range-requests {g.auto_min_range_requests}: must be >= 1"
        )
    if g.auto_min_sequential_mb < 1:
        raise ConfigError(
            f"invalid general.auto-min-sequential-mb {g.auto_min_sequential_mb}: must be >= 1"
        )
    if not 0 < g.auto_min_sequential_rate <= 1:
        raise ConfigError(
            f"invalid general.auto-min-sequential-rate {g.auto_min_sequential_rate:f}: "
            "must be in (0,1]"
        )
    if g.auto_max_backward_seeks < 0:
        raise ConfigError(
            f"invalid general.auto-max-backward-seeks {g.auto_max_backward_seeks}: must be >= 0"
        )
    if g.auto_file_hint_ttl <= timedelta(0):
        raise ConfigError(
            f"invalid general.auto-file-hint-ttl {_format_duration(g.auto_file_hint_ttl)}: "
            "must be > 0"
        )
    if g.auto_promotion_cooldown <= timedelta(0):
        raise ConfigError(
            "invalid general.auto-promotion-cooldown "
            f"{_format_duration(g.auto_promotion_cooldown)}: must be > 0"
        )


def load(args: Optional[Sequence[str]] = None) -> Config:
    """Load configuration from the config file and command-line ``args``.

    Values from the INI file act as defaults; flags on the command line
    override them. Unknown flags and positional arguments are ignored.
    """
    args = list(sys.argv[1:] if args is None else args)

    config_path = _expand_home(_config_path_from_args(args))
    cfg = Config(config_file=config_path)

    if os.path.exists(config_path):
        _apply_ini(cfg, config_path)

    _apply_args(cfg, args)

    cfg.general.cache_dir = _expand_home(cfg.general.cache_dir)
    cfg.general.local_dir = _expand_home(cfg.general.local_dir)
    cfg.general.bitcoin_data_dir = _expand_home(cfg.general.bitcoin_data_dir)

    _validate(cfg)
    return cfg