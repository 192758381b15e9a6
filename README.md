# slimnode

A library for a Bitcoin full node that keeps only part of its block files on
local disk. It works with Bitcoin Core's `blk*.dat` files and with the small
index files ("blockmaps") that record where each block sits inside them. It
has no third-party dependencies.

## Modules

| Module | Purpose |
| --- | --- |
| `slimnode.blockmap` | Scan `blk*.dat` files; read and write the binary blockmap format |
| `slimnode.blockcache` | A disk cache of single blocks, keyed by blk file name and offset |
| `slimnode.config` | Load settings from a `.conf` file and command-line arguments |
| `slimnode.logsetup` | Configure the root logger from a level name |
| `slimnode.daemonize` | PID files, relaunching in the background, stopping a running daemon |
| `slimnode.symlink` | Link `<bitcoin-datadir>/blocks/index` to `<local-dir>/index` |
| `slimnode.chains` | Network magic numbers of the Bitcoin chains |

## Blockmaps

A blockmap lists every block in one blk file as a `BlockmapEntry`: the
double SHA-256 of its 80-byte header (`block_hash`), the offset of its 8-byte
preamble (`file_offset`) and the size of the block data without the preamble
(`block_data_size`). Entries are kept sorted by offset.

```python
from slimnode.blockmap import scan_blk_file, write_file, read_file
from slimnode.chains import chain_to_network_magic

magic = chain_to_network_magic("mainnet")
bm = scan_blk_file("/data/bitcoin/blocks/blk00000.dat", magic)
write_file("/data/blockmaps/blk00000.dat.blockmap", bm)

loaded = read_file("/data/blockmaps/blk00000.dat.blockmap")
loaded.filename                            # "blk00000.dat"
entry = loaded.find_block(123_456)         # entry covering that byte, or None
overlapping = loaded.find_blocks(0, 4096)  # every entry touching [0, 4096)
```

`read(stream)` and `write(stream, blockmap)` do the same against any binary
stream; `write` sorts the entries by offset. `read_file` sets `filename` to the
file's base name with a trailing `.blockmap` removed. `write_file` creates the
parent directory and writes through a temporary file that is renamed into
place.

The format is a 16-byte header (magic `0x424D4150`, version 1, entry count,
six reserved bytes) followed by 44-byte entries, all integers little-endian.
`read` rejects a wrong magic, another version, a count of 1,000,000 or more,
unsorted entries and truncated data with `BlockmapError` (a `ValueError`).
`scan_blk_file` raises the same error for a wrong network magic, a truncated
preamble or block, or a block shorter than 80 bytes; an empty file gives an
empty blockmap.

## Block cache

```python
from slimnode.blockcache import DiskBlockCache

cache = DiskBlockCache("/var/cache/slimnode/blocks", 10 * 1024**3)
cache.store_block("blk02100.dat", 44800, raw_block)
if cache.has_block("blk02100.dat", 44800):
    data = cache.get_block("blk02100.dat", 44800)
used, limit = cache.usage()
cache.remove_file("blk02100.dat")
```

Each block is stored as `<directory>/<blk file>/<offset>`, written atomically.
`usage()` returns the bytes on disk and the configured limit; the limit is
reported, not enforced. Reading a block that is not cached raises
`BlockCacheError` (an `OSError`).

## Configuration

`slimnode.config.load(args)` takes an argument list (by default
`sys.argv[1:]`). It reads the file named by `--config` (default
`~/.slimnode/config.conf`, used only if it exists), then applies options from
the command line on top. Unknown options and positional arguments are ignored.

```ini
[general]
general.mount-point = /mnt/bitcoin-blocks
general.remote-fetch-mode = auto

[server]
server.url = https://archive.example.com
server.request-timeout = 30s
```

```python
from slimnode.config import load

cfg = load(["--config", "/etc/slimnode.conf", "--cache.max-size-gb", "100"])
cfg.cache.max_size_gb        # 100
cfg.server.request_timeout   # datetime.timedelta(seconds=30)
```

The result is a `Config` with `general`, `cache`, `server` and `compact`
sections (`GeneralConfig`, `CacheConfig`, `ServerConfig`, `CompactConfig`).
A leading `~` is expanded in the config path and in the cache, local and
Bitcoin data directories. A missing mount point or server URL, a remote fetch
mode other than `auto`, `file` or `range`, or another value outside its range
raises `ConfigError` (a `ValueError`). Durations are written like `30s`, `10m`
or `1h30m`; `parse_duration` turns one into a `timedelta`.

## Logging

`parse_log_level` maps `debug`, `info`, `warn`/`warning` and `error` (any case;
blank means `info`) to a `logging` level and raises `ValueError` otherwise.
`configure_logging(level, stream)` replaces the root logger's handlers with one
writing to `stream` (standard error by default).
`configure_logging_from_args(args, stream)` takes the level from the loaded
configuration.

## Running in the background

`slimnode.daemonize` works on POSIX systems:

- `write_pid`, `read_pid` and `remove_pid` manage a PID file. `read_pid` raises
  `OSError` when the file cannot be read and `DaemonError` when it does not
  hold a PID or that process is not running.
- `daemonize(pid_path, log_path)` starts the current Python program again in a
  new session, without `--background`/`-b` and with `_SLIMNODE_DAEMON=1` set,
  sends its output to the log file, writes its PID and returns it. It raises
  `DaemonError` if the PID file names a running process. `is_daemon_child()`
  tells the child that it is the background copy.
- `stop_daemon(pid_path)` sends SIGTERM, waits up to three seconds for the
  process to exit, removes the PID file and returns the PID.

## Bitcoin Core's block index

`ensure_blocks_index_symlink(cfg)` makes `<bitcoin-datadir>/blocks/index` a
symlink to `<local-dir>/index`, creating parent directories, and returns the
link path. It does nothing if the correct link exists, and raises
`SymlinkError` if the index directory is missing, the link points elsewhere,
or a real file or directory is in the way.

## Chains

`chain_to_network_magic` returns the network magic of `mainnet`, `testnet`
(or `testnet3`), `testnet4`, `signet` and `regtest`, and raises `ValueError`
for any other name. The table is `NETWORK_MAGICS`.

## What the package does not do

It provides no command-line programs. It does not mount a filesystem, fetch
block files or manifests from a server, serve files over HTTP, upload to
object storage, evict files from a cache by age, or run compaction. The
configuration options for those features are loaded and validated, but
nothing in the package acts on them.

## Development

The tests use pytest, listed in the `test` extra:

```sh
pip install -e ".[test]"
pytest
```