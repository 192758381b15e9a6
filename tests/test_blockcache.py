from concurrent.futures import ThreadPoolExecutor

import pytest

from slimnode.blockcache import BlockCacheError, DiskBlockCache

MB = 1024 * 1024


@pytest.fixture
def cache(tmp_path):
    return DiskBlockCache(tmp_path / "cache", 100 * MB)


def test_store_get_has(cache):
    data = b"hello block"
    cache.store_block("blk02100.dat", 44800, data)
    assert cache.has_block("blk02100.dat", 44800)
    assert cache.get_block("blk02100.dat", 44800) == data


def test_get_block_nonexistent(cache):
    assert not cache.has_block("blk00000.dat", 0)
    with pytest.raises(BlockCacheError):
        cache.get_block("blk00000.dat", 0)


def test_remove_file(cache):
    cache.store_block("blk00001.dat", 0, b"a")
    cache.store_block("blk00001.dat", 128, b"b")
    cache.store_block("blk00002.dat", 0, b"c")

    cache.remove_file("blk00001.dat")

    assert not cache.has_block("blk00001.dat", 0)
    assert not cache.has_block("blk00001.dat", 128)
    assert cache.has_block("blk00002.dat", 0)


def test_remove_missing_file_is_noop(cache):
    cache.remove_file("blk00009.dat")
    assert cache.usage()[0] == 0


def test_concurrent_stores(cache):
    def store(i):
        cache.store_block("blk00000.dat", i * 512, f"data-{i}".encode())

    with ThreadPoolExecutor(max_workers=10) as pool:
        list(pool.map(store, range(10)))

    for i in range(10):
        assert cache.get_block("blk00000.dat", i * 512) == f"data-{i}".encode()


def test_usage(tmp_path):
    max_bytes = 50 * MB
    c = DiskBlockCache(tmp_path / "cache", max_bytes)
    data1 = b"a" * 10
    data2 = b"b" * 14
    c.store_block("blk00000.dat", 0, data1)
    c.store_block("blk00000.dat", 512, data2)

    used, total = c.usage()
    assert total == max_bytes
    assert used == len(data1) + len(data2)


def test_overwrite_block(cache):
    cache.store_block("blk00003.dat", 64, b"old")
    cache.store_block("blk00003.dat", 64, b"newer")
    assert cache.get_block("blk00003.dat", 64) == b"newer"
    assert cache.usage()[0] == 5


def test_creation_fails_when_path_is_file(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_bytes(b"x")
    with pytest.raises(BlockCacheError):
        DiskBlockCache(blocker / "cache", MB)