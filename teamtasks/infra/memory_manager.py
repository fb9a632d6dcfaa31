"""Carves one durable memory into independently growable segments.

Layout of the underlying memory::

    page 0    header
              [0..3)      magic b"MGR"
              [3]         layout version
              [4..6)      number of allocated buckets (u16)
              [6..8)      bucket size in pages (u16)
              [8..40)     reserved
              [40..2080)  size in pages of each segment (255 x u64)
              [2080..)    owner tag of each bucket (32768 x u8, 255 = free)
    page 1..  buckets, each ``bucket_size_in_pages`` long

A segment is the ordered list of buckets its tag owns. Buckets are handed
out in index order and never released, so the owner table alone rebuilds
every segment after a restart and no two segments share a byte.
"""
from __future__ import annotations

import logging
import math
import struct

from .errors import AllocationError, SegmentAlreadyClaimed, StorageError
from .memory import PAGE_SIZE, Memory, check_bounds

logger = logging.getLogger(__name__)

MAGIC = b"MGR"
LAYOUT_VERSION = 1

MAX_NUM_MEMORIES = 255
MAX_NUM_BUCKETS = 32768
UNALLOCATED_BUCKET = 255
DEFAULT_BUCKET_SIZE_IN_PAGES = 128
BUCKETS_OFFSET_IN_PAGES = 1

HEADER = struct.Struct("<3sBHH32x")
SIZES = struct.Struct(f"<{MAX_NUM_MEMORIES}Q")
SIZES_OFFSET = HEADER.size
BUCKET_TABLE_OFFSET = SIZES_OFFSET + SIZES.size
BUCKETS_OFFSET = BUCKETS_OFFSET_IN_PAGES * PAGE_SIZE


class MemoryManager:
    def __init__(
        self,
        memory: Memory,
        bucket_size_in_pages: int,
        sizes: list[int],
        owners: bytes,
    ) -> None:
        self._memory = memory
        self._bucket_size_in_pages = bucket_size_in_pages
        self._set_layout(sizes, owners)
        self._segments: dict[int, VirtualMemory] = {}
        self._claimed: set[int] = set()

    @classmethod
    def init(
        cls,
        memory: Memory,
        bucket_size_in_pages: int = DEFAULT_BUCKET_SIZE_IN_PAGES,
    ) -> MemoryManager:
        if memory.size() == 0:
            return cls._create(memory, bucket_size_in_pages)
        return cls._load(memory)

    @classmethod
    def _create(cls, memory: Memory, bucket_size_in_pages: int) -> MemoryManager:
        if not 1 <= bucket_size_in_pages <= 0xFFFF:
            raise ValueError(f"bucket size must be within 1..65535 pages, got {bucket_size_in_pages}")
        if memory.grow(BUCKETS_OFFSET_IN_PAGES) == -1:
            raise AllocationError("cannot grow memory for the segment table")
        sizes = [0] * MAX_NUM_MEMORIES
        memory.write(0, HEADER.pack(MAGIC, LAYOUT_VERSION, 0, bucket_size_in_pages))
        memory.write(SIZES_OFFSET, SIZES.pack(*sizes))
        logger.debug("Initialized segment table with %d-page buckets", bucket_size_in_pages)
        return cls(memory, bucket_size_in_pages, sizes, b"")

    @classmethod
    def _load(cls, memory: Memory) -> MemoryManager:
        magic, version, num_buckets, bucket_size_in_pages = HEADER.unpack(
            memory.read(0, HEADER.size)
        )
        if magic != MAGIC:
            raise StorageError(f"memory does not hold a segment table (magic {magic!r})")
        if version != LAYOUT_VERSION:
            raise StorageError(f"unsupported segment table version {version}")
        sizes = list(SIZES.unpack(memory.read(SIZES_OFFSET, SIZES.size)))
        owners = memory.read(BUCKET_TABLE_OFFSET, num_buckets)
        logger.debug("Loaded segment table with %d allocated buckets", num_buckets)
        return cls(memory, bucket_size_in_pages, sizes, owners)

    def reload(self) -> None:
        """Re-read segment sizes and bucket owners, e.g. after a rolled back transaction."""
        num_buckets = HEADER.unpack(self._memory.read(0, HEADER.size))[2]
        sizes = list(SIZES.unpack(self._memory.read(SIZES_OFFSET, SIZES.size)))
        self._set_layout(sizes, self._memory.read(BUCKET_TABLE_OFFSET, num_buckets))

    def _set_layout(self, sizes: list[int], owners: bytes) -> None:
        self._sizes = sizes
        self._num_buckets = len(owners)
        self._buckets: dict[int, list[int]] = {}
        for bucket_id, tag in enumerate(owners):
            if tag != UNALLOCATED_BUCKET:
                self._buckets.setdefault(tag, []).append(bucket_id)

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def bucket_size_in_pages(self) -> int:
        return self._bucket_size_in_pages

    @property
    def allocated_buckets(self) -> int:
        return self._num_buckets

    def get(self, tag: int) -> VirtualMemory:
        if not 0 <= tag < MAX_NUM_MEMORIES:
            raise ValueError(f"segment tag must be within 0..{MAX_NUM_MEMORIES - 1}, got {tag}")
        segment = self._segments.get(tag)
        if segment is None:
            segment = self._segments[tag] = VirtualMemory(self, tag)
        return segment

    def claim(self, tag: int) -> VirtualMemory:
        """Return the segment for ``tag``, refusing a tag that is already bound."""
        if tag in self._claimed:
            raise SegmentAlreadyClaimed(f"segment tag {tag} is already bound to another structure")
        segment = self.get(tag)
        self._claimed.add(tag)
        return segment

    def segment_size(self, tag: int) -> int:
        return self._sizes[tag]

    def grow(self, tag: int, pages: int) -> int:
        current = self._sizes[tag]
        if pages <= 0:
            return current

        owned = self._buckets.setdefault(tag, [])
        required = math.ceil((current + pages) / self._bucket_size_in_pages) - len(owned)
        if required > 0:
            if self._num_buckets + required > MAX_NUM_BUCKETS:
                logger.error("Segment %d cannot grow: all %d buckets allocated", tag, MAX_NUM_BUCKETS)
                return -1
            needed = BUCKETS_OFFSET_IN_PAGES + (self._num_buckets + required) * self._bucket_size_in_pages
            available = self._memory.size()
            if needed > available and self._memory.grow(needed - available) == -1:
                logger.error("Segment %d cannot grow: underlying memory exhausted", tag)
                return -1

            first = self._num_buckets
            self._memory.write(BUCKET_TABLE_OFFSET + first, bytes([tag]) * required)
            self._num_buckets += required
            owned.extend(range(first, self._num_buckets))
            self._memory.write(
                0, HEADER.pack(MAGIC, LAYOUT_VERSION, self._num_buckets, self._bucket_size_in_pages)
            )
            logger.debug("Segment %d took buckets %d..%d", tag, first, self._num_buckets - 1)

        self._sizes[tag] = current + pages
        self._memory.write(SIZES_OFFSET + tag * 8, struct.pack("<Q", current + pages))
        return current

    def read(self, tag: int, offset: int, length: int) -> bytes:
        check_bounds(self._sizes[tag], offset, length)
        return b"".join(
            self._memory.read(address, size)
            for address, size in self._chunks(tag, offset, length)
        )

    def write(self, tag: int, offset: int, data: bytes) -> None:
        check_bounds(self._sizes[tag], offset, len(data))
        position = 0
        for address, size in self._chunks(tag, offset, len(data)):
            self._memory.write(address, data[position:position + size])
            position += size

    def _chunks(self, tag: int, offset: int, length: int):
        """Yield ``(address, size)`` runs of the underlying memory, bucket by bucket."""
        bucket_bytes = self._bucket_size_in_pages * PAGE_SIZE
        owned = self._buckets.get(tag, [])
        while length > 0:
            index, within = divmod(offset, bucket_bytes)
            size = min(length, bucket_bytes - within)
            yield BUCKETS_OFFSET + owned[index] * bucket_bytes + within, size
            offset += size
            length -= size


class VirtualMemory:
    """One segment of a ``MemoryManager``, usable wherever a ``Memory`` is."""

    def __init__(self, manager: MemoryManager, tag: int) -> None:
        self._manager = manager
        self.tag = tag

    def size(self) -> int:
        return self._manager.segment_size(self.tag)

    def grow(self, pages: int) -> int:
        return self._manager.grow(self.tag, pages)

    def read(self, offset: int, length: int) -> bytes:
        return self._manager.read(self.tag, offset, length)

    def write(self, offset: int, data: bytes) -> None:
        self._manager.write(self.tag, offset, data)
