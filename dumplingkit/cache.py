"""Write-back sector cache with LRU eviction, directory entry cache and profiling counters."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Protocol

# Largest number of consecutive dirty sectors written back in a single device call.
MAX_FLUSH_SECTORS = 512

# Directory table marker meaning "no table remembered".
NO_DIR_TABLE = 0xFFFFFFFF

# Short file names are keyed on their 8.3 body and extension, without the status byte.
SFN_LENGTH = 11


class CacheError(Exception):
    """The cache is not usable or the device returned unusable data."""


class _Device(Protocol):
    def read_sectors(self, sector: int, count: int) -> bytes: ...

    def write_sectors(self, sector: int, data: bytes) -> None: ...


class BlockDevice:
    """A sector-addressed device held in memory.

    Sectors that were never written read back as zeros. Every device call is
    recorded in ``reads`` and ``writes`` as ``(sector, count)`` pairs.
    """

    def __init__(self, sector_size: int = 512, image: bytes = b"") -> None:
        if sector_size <= 0:
            raise ValueError("sector size must be positive")
        self.sector_size = sector_size
        self.image = bytearray(image)
        self.reads: list[tuple[int, int]] = []
        self.writes: list[tuple[int, int]] = []

    def read_sectors(self, sector: int, count: int) -> bytes:
        """Return ``count`` sectors starting at ``sector``."""
        if sector < 0 or count < 0:
            raise ValueError("sector and count must not be negative")
        self.reads.append((sector, count))
        start = sector * self.sector_size
        length = count * self.sector_size
        return bytes(self.image[start:start + length]).ljust(length, b"\0")

    def write_sectors(self, sector: int, data: bytes) -> None:
        """Store whole sectors starting at ``sector``."""
        if sector < 0:
            raise ValueError("sector must not be negative")
        data = bytes(data)
        if len(data) % self.sector_size:
            raise ValueError("data is not a whole number of sectors")
        self.writes.append((sector, len(data) // self.sector_size))
        start = sector * self.sector_size
        end = start + len(data)
        if len(self.image) < end:
            self.image.extend(bytes(end - len(self.image)))
        self.image[start:end] = data


@dataclass
class DirEntryCache:
    """Where a directory entry was found on the volume."""

    cluster: int
    sector_offset: int
    dir_idx: int
    lfn_start_dir_idx: int


@dataclass(eq=False)
class _Sector:
    index: int
    buffer: bytearray
    dirty: bool = False


def _sfn_key(name: bytes | str) -> bytes:
    key = name.encode("ascii") if isinstance(name, str) else bytes(name)
    if len(key) < SFN_LENGTH:
        raise ValueError("short file names are eleven bytes long")
    return key[:SFN_LENGTH]


class SectorCache:
    """A fixed pool of sector buffers in front of a block device.

    Writes stay in the cache until the sector is evicted or the cache is
    flushed; dirty neighbours are written back together.
    """

    def __init__(self, device: _Device, sector_size: int, sector_count: int) -> None:
        if sector_size <= 0:
            raise ValueError("sector size must be positive")
        if sector_count <= 0:
            raise ValueError("the cache needs at least one sector")
        self.device = device
        self.sector_size = sector_size
        self.sector_count = sector_count
        self.initialized = True
        self._free = [_Sector(-1, bytearray(sector_size)) for _ in range(sector_count)]
        # Cached sectors by index, least recently used first.
        self._cached: OrderedDict[int, _Sector] = OrderedDict()
        self._active: _Sector | None = None
        self._sfns: dict[bytes, DirEntryCache] = {}
        self._lfns: dict[str, DirEntryCache] = {}
        self._last_dir_table = NO_DIR_TABLE
        self._last_allocated_idx = 0

    # -- internals --------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise CacheError("sector cache is not initialized")

    def _raw_read(self, sector: int, count: int) -> bytes:
        data = self.device.read_sectors(sector, count)
        if len(data) < count * self.sector_size:
            raise CacheError("device returned fewer bytes than requested")
        return bytes(data)

    def _flushable_range(self, start: int) -> int:
        limit = min(MAX_FLUSH_SECTORS, self.sector_count)
        for offset in range(limit):
            entry = self._cached.get(start + offset)
            if entry is None or not entry.dirty:
                return offset
        return limit

    def _flush_range(self, entry: _Sector) -> None:
        if not entry.dirty:
            return
        count = self._flushable_range(entry.index)
        chunks = []
        for offset in range(count):
            neighbour = self._cached[entry.index + offset]
            chunks.append(bytes(neighbour.buffer))
            neighbour.dirty = False
        self.device.write_sectors(entry.index, b"".join(chunks))

    def _new_sector(self, index: int) -> _Sector:
        if self._free:
            entry = self._free.pop()
        else:
            _, entry = next(iter(self._cached.items()))
            self._flush_range(entry)
            del self._cached[entry.index]
        entry.index = index
        entry.dirty = False
        self._cached[index] = entry
        return entry

    def _uncached_run(self, start: int, limit: int) -> int:
        for offset in range(limit):
            if start + offset in self._cached:
                return offset
        return limit

    # -- sector access ----------------------------------------------------

    def read_sectors(self, sector: int, count: int) -> bytes:
        """Return ``count`` sectors, reading missing runs from the device."""
        self._require_initialized()
        if sector < 0 or count < 0:
            raise ValueError("sector and count must not be negative")
        size = self.sector_size
        out = bytearray(count * size)
        i = 0
        while i < count:
            entry = self._cached.get(sector + i)
            if entry is not None:
                out[i * size:(i + 1) * size] = entry.buffer
                self._cached.move_to_end(entry.index)
                i += 1
                continue
            run = self._uncached_run(sector + i, count - i)
            data = self._raw_read(sector + i, run)
            for f in range(run):
                chunk = data[f * size:(f + 1) * size]
                self._new_sector(sector + i + f).buffer[:] = chunk
                out[(i + f) * size:(i + f + 1) * size] = chunk
            i += run
        return bytes(out)

    def write_sectors(self, sector: int, data: bytes) -> None:
        """Place whole sectors in the cache and mark them dirty."""
        self._require_initialized()
        if sector < 0:
            raise ValueError("sector must not be negative")
        data = bytes(data)
        size = self.sector_size
        if len(data) % size:
            raise ValueError("data is not a whole number of sectors")
        for i in range(len(data) // size):
            entry = self._cached.get(sector + i)
            if entry is None:
                entry = self._new_sector(sector + i)
            entry.buffer[:] = data[i * size:(i + 1) * size]
            entry.dirty = True

    def flush(self) -> None:
        """Write back every dirty sector and empty the cache."""
        self._require_initialized()
        while self._cached:
            _, entry = next(iter(self._cached.items()))
            self._flush_range(entry)
            del self._cached[entry.index]
            self._free.append(entry)

    def shutdown(self) -> None:
        """Flush the cache, drop all buffers and forget cached directory entries."""
        if not self.initialized:
            return
        self.flush()
        self._free.clear()
        self._active = None
        self.clear_dir_cache()
        self.initialized = False

    def get_sector(self, sector: int) -> bytearray:
        """Return the live buffer of a sector, marked dirty for write-back."""
        self._require_initialized()
        if sector < 0:
            raise ValueError("sector must not be negative")
        active = self._active
        if active is not None and active.index == sector and self._cached.get(sector) is active:
            entry = active
            self._cached.move_to_end(sector)
        else:
            entry = self._cached.get(sector)
            if entry is None:
                entry = self._new_sector(sector)
                entry.buffer[:] = self._raw_read(sector, 1)[:self.sector_size]
            else:
                self._cached.move_to_end(sector)
            self._active = entry
        entry.dirty = True
        return entry.buffer

    # -- directory entry cache ---------------------------------------------

    def create_sfn(
        self,
        name: bytes | str,
        cluster: int,
        sector_offset: int,
        dir_idx: int,
        lfn_start_dir_idx: int,
    ) -> DirEntryCache:
        """Remember a short-name entry; an existing entry for the name is kept."""
        return self._sfns.setdefault(
            _sfn_key(name), DirEntryCache(cluster, sector_offset, dir_idx, lfn_start_dir_idx)
        )

    def find_sfn(self, name: bytes | str) -> DirEntryCache | None:
        """Return the remembered short-name entry, if any."""
        return self._sfns.get(_sfn_key(name))

    def create_lfn(
        self,
        name: str,
        cluster: int,
        sector_offset: int,
        dir_idx: int,
        lfn_start_dir_idx: int,
    ) -> DirEntryCache:
        """Remember a long-name entry; an existing entry for the name is kept."""
        return self._lfns.setdefault(
            name, DirEntryCache(cluster, sector_offset, dir_idx, lfn_start_dir_idx)
        )

    def find_lfn(self, name: str) -> DirEntryCache | None:
        """Return the remembered long-name entry, if any."""
        return self._lfns.get(name)

    def set_last_allocated_idx(self, last_idx: int, last_dir_table: int) -> None:
        """Record the last allocated entry index of a directory table."""
        if last_dir_table == self._last_dir_table:
            self._last_allocated_idx = last_idx
        else:
            self._last_dir_table = last_dir_table
            self._last_allocated_idx = 0

    def get_last_cluster_idx(self, dir_table: int) -> int:
        """Return the last allocated index recorded for ``dir_table``, else 0."""
        if dir_table != self._last_dir_table:
            return 0
        return self._last_allocated_idx

    def clear_dir_cache(self) -> None:
        """Forget all cached directory entries and allocation state."""
        self._last_allocated_idx = 0
        self._last_dir_table = NO_DIR_TABLE
        self._sfns.clear()
        self._lfns.clear()


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class Profiler:
    """Thread-safe named time accumulators and counters."""

    clock: Callable[[], int] = _now_ms
    _times: dict[str, float] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def start_segment(self) -> int:
        """Return the current time in milliseconds."""
        return self.clock()

    def end_segment(self, name: str, start: int) -> None:
        """Add the milliseconds elapsed since ``start`` to the named segment."""
        elapsed = float(self.clock() - start)
        with self._lock:
            self._times[name] = self._times.get(name, 0.0) + elapsed

    def increment_counter(self, name: str) -> None:
        """Add one to the named counter."""
        with self._lock:
            self._times[name] = self._times.get(name, 0.0) + 1.0

    def take_segment(self, name: str) -> float:
        """Return the named total and reset it to zero."""
        with self._lock:
            value = self._times.get(name, 0.0)
            self._times[name] = 0.0
            return value