"""Bounded store for upscaled images keyed by caller-supplied strings.

The in-memory tier holds a fixed number of entries and evicts according to a
pluggable policy (FIFO by default). An optional disk tier persists entries as
PNG files under the service temp directory.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Type

from neural_resize.errors import DecodeError
from neural_resize.logger import setup_logger
from neural_resize.raster import RasterImage, RasterProcessor

logger = setup_logger(__name__)

DEFAULT_CAPACITY = 4


class EvictionPolicy:
    """Decides ordering of cache entries. The first key in the order is evicted."""

    name = "base"

    def on_insert(self, order: "OrderedDict[str, RasterImage]", key: str) -> None:
        order.move_to_end(key)

    def on_lookup(self, order: "OrderedDict[str, RasterImage]", key: str) -> None:
        pass

    def victim(self, order: "OrderedDict[str, RasterImage]") -> str:
        return next(iter(order))


class FIFOPolicy(EvictionPolicy):
    """Oldest insertion goes first; lookups never change the order."""

    name = "fifo"


class LRUPolicy(EvictionPolicy):
    """Least recently inserted or looked-up entry goes first."""

    name = "lru"

    def on_lookup(self, order: "OrderedDict[str, RasterImage]", key: str) -> None:
        order.move_to_end(key)


POLICIES: Dict[str, Type[EvictionPolicy]] = {
    FIFOPolicy.name: FIFOPolicy,
    LRUPolicy.name: LRUPolicy,
}


def make_policy(name: Optional[str]) -> EvictionPolicy:
    normalized = (name or FIFOPolicy.name).strip().lower()
    policy_cls = POLICIES.get(normalized)
    if policy_cls is None:
        logger.warning("Unknown cache policy '%s', using fifo", name)
        policy_cls = FIFOPolicy
    return policy_cls()


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0


class DiskResultStore:
    """PNG-per-entry persistence for cached results."""

    def __init__(self, directory: Path, max_entries: int = 64) -> None:
        self.directory = Path(directory)
        self.max_entries = max(1, int(max_entries))
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.png"

    def load(self, key: str) -> Optional[RasterImage]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return RasterProcessor.decode_from_bytes(path.read_bytes())
        except (DecodeError, OSError) as exc:
            logger.warning("Discarding unreadable cache file %s: %s", path, exc)
            path.unlink(missing_ok=True)
            return None

    def save(self, key: str, image: RasterImage) -> None:
        path = self.path_for(key)
        tmp_path = path.with_suffix(".png.tmp")
        tmp_path.write_bytes(RasterProcessor.encode_png(image))
        tmp_path.replace(path)
        self._prune(keep=path)

    def clear(self) -> None:
        for path in self.directory.glob("*.png"):
            path.unlink(missing_ok=True)

    def _prune(self, keep: Optional[Path] = None) -> None:
        # Oldest first; the entry just written is never a candidate
        files = sorted(
            (p for p in self.directory.glob("*.png") if p != keep),
            key=lambda p: (p.stat().st_mtime_ns, p.name),
        )
        budget = self.max_entries - (1 if keep is not None else 0)
        for stale in files[: max(0, len(files) - budget)]:
            stale.unlink(missing_ok=True)
            logger.debug("Pruned disk cache entry %s", stale.name)


class ResultCache:
    """Fixed-capacity key -> image store.

    The cache owns every image it holds: stored images are frozen (read-only)
    and ``lookup`` lends them out. Not thread-safe on its own; the
    orchestrator calls it only while holding its session lock.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        policy: Optional[EvictionPolicy] = None,
        disk_store: Optional[DiskResultStore] = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1")
        self._capacity = int(capacity)
        self._policy = policy or FIFOPolicy()
        self._disk = disk_store
        self._entries: "OrderedDict[str, RasterImage]" = OrderedDict()
        self.stats = CacheStats()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def policy(self) -> EvictionPolicy:
        return self._policy

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key in self._entries

    def keys(self) -> List[str]:
        """Keys in eviction order (next victim first)."""
        return list(self._entries.keys())

    def lookup(self, key: Optional[str]) -> Optional[RasterImage]:
        """
        Return the cached image for ``key``, or None on a miss

        An absent or empty key is always a miss. A memory miss falls back to the
        disk tier when one is configured. The returned image is read-only.
        """
        if not key:
            return None

        image = self._entries.get(key)
        if image is not None:
            self._policy.on_lookup(self._entries, key)
            self.stats.hits += 1
            return image

        if self._disk is not None:
            image = self._disk.load(key)
            if image is not None:
                logger.debug("Disk cache hit for %s", key)
                self._install(key, image.freeze())
                self.stats.hits += 1
                return image

        self.stats.misses += 1
        return None

    def insert(self, key: Optional[str], image: RasterImage) -> None:
        """
        Store ``image`` under ``key``, evicting one entry when full

        Empty keys are ignored. Re-inserting a key replaces its image. The
        image is frozen and owned by the cache from here on.
        """
        if not key:
            return
        image.freeze()
        self._install(key, image)
        if self._disk is not None:
            try:
                self._disk.save(key, image)
            except OSError as exc:
                logger.warning("Could not persist cache entry %s: %s", key, exc)

    def clear(self) -> None:
        self._entries.clear()
        if self._disk is not None:
            self._disk.clear()

    def _install(self, key: str, image: RasterImage) -> None:
        if key in self._entries:
            # Replacing an existing key never evicts an unrelated entry
            self._entries[key] = image
            self._policy.on_insert(self._entries, key)
            return

        while len(self._entries) >= self._capacity:
            victim = self._policy.victim(self._entries)
            del self._entries[victim]
            self.stats.evictions += 1
            logger.debug("Evicted cache entry %s", victim)

        self._entries[key] = image
        self._policy.on_insert(self._entries, key)


__all__ = [
    "DEFAULT_CAPACITY",
    "EvictionPolicy",
    "FIFOPolicy",
    "LRUPolicy",
    "make_policy",
    "CacheStats",
    "DiskResultStore",
    "ResultCache",
]
