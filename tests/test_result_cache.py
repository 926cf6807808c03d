"""Tests for the bounded result cache and its eviction policies."""

import os
import time

import numpy as np
import pytest

from neural_resize.raster import RasterImage
from neural_resize.result_cache import (
    DiskResultStore,
    FIFOPolicy,
    LRUPolicy,
    ResultCache,
    make_policy,
)


def _image(value: int) -> RasterImage:
    return RasterImage(np.full((2, 2, 3), value, dtype=np.uint8), "RGB")


def test_absent_or_empty_key_is_always_a_miss():
    cache = ResultCache()
    cache.insert(None, _image(1))
    cache.insert("", _image(2))

    assert len(cache) == 0
    assert cache.lookup(None) is None
    assert cache.lookup("") is None


def test_lookup_returns_stored_image_by_exact_key():
    cache = ResultCache()
    image = _image(9)
    cache.insert("page-1", image)

    assert cache.lookup("page-1") is image
    assert cache.lookup("page-1 ") is None
    assert cache.lookup("PAGE-1") is None


def test_capacity_plus_one_evicts_first_inserted():
    cache = ResultCache(capacity=4)
    for index, key in enumerate("abcd"):
        cache.insert(key, _image(index))

    # FIFO ignores lookups
    assert cache.lookup("a") is not None

    cache.insert("e", _image(5))

    assert len(cache) == 4
    assert cache.lookup("a") is None
    assert cache.keys() == ["b", "c", "d", "e"]
    assert cache.stats.evictions == 1


def test_lru_policy_keeps_recently_used_entry():
    cache = ResultCache(capacity=2, policy=LRUPolicy())
    cache.insert("a", _image(1))
    cache.insert("b", _image(2))
    cache.lookup("a")

    cache.insert("c", _image(3))

    assert "a" in cache
    assert "b" not in cache


def test_reinsert_replaces_existing_key_without_evicting_others():
    cache = ResultCache(capacity=3)
    cache.insert("a", _image(1))
    cache.insert("b", _image(2))
    cache.insert("c", _image(3))

    replacement = _image(42)
    cache.insert("b", replacement)

    assert len(cache) == 3
    assert {"a", "b", "c"} == set(cache.keys())
    assert cache.lookup("b") is replacement
    assert cache.stats.evictions == 0


def test_stored_images_are_read_only():
    cache = ResultCache()
    cache.insert("k", _image(7))

    cached = cache.lookup("k")

    assert not cached.pixels.flags.writeable
    with pytest.raises(ValueError):
        cached.pixels[0, 0, 0] = 1


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        ResultCache(capacity=0)


def test_hit_and_miss_counters():
    cache = ResultCache()
    cache.insert("x", _image(1))
    cache.lookup("x")
    cache.lookup("y")

    assert cache.stats.hits == 1
    assert cache.stats.misses == 1


def test_make_policy_resolves_names():
    assert isinstance(make_policy("LRU"), LRUPolicy)
    assert isinstance(make_policy("fifo"), FIFOPolicy)
    assert isinstance(make_policy("mystery"), FIFOPolicy)
    assert isinstance(make_policy(None), FIFOPolicy)


def test_disk_store_survives_new_cache_instance(tmp_path):
    store = DiskResultStore(tmp_path / "cache", max_entries=8)
    first = ResultCache(capacity=2, disk_store=store)
    pixels = np.arange(12, dtype=np.uint8).reshape(2, 2, 3)
    first.insert("model-a:page-3", RasterImage(pixels, "RGB"))

    second = ResultCache(capacity=2, disk_store=store)
    restored = second.lookup("model-a:page-3")

    assert restored is not None
    np.testing.assert_array_equal(restored.pixels, pixels)
    assert "model-a:page-3" in second


def test_disk_store_prunes_oldest_files(tmp_path):
    store = DiskResultStore(tmp_path, max_entries=2)
    for key in ("one", "two", "three"):
        store.save(key, _image(len(key)))

    assert len(list(tmp_path.glob("*.png"))) == 2


def test_disk_store_keeps_entry_just_written(tmp_path):
    store = DiskResultStore(tmp_path, max_entries=2)
    store.save("one", _image(1))
    store.save("two", _image(2))
    # older entries stamped later than the next write, as on coarse clocks
    future = time.time() + 100
    for path in tmp_path.glob("*.png"):
        os.utime(path, (future, future))

    store.save("three", _image(3))

    assert store.path_for("three").exists()
    assert len(list(tmp_path.glob("*.png"))) == 2
    assert store.load("three") is not None
