"""Persisted ordered map from u64 keys to bounded records.

Layout of the segment::

    [0..3)    magic b"RMP"
    [3]       layout version
    [4..8)    max encoded value size (u32)
    [8..16)   number of entries (u64)
    [16..)    slots sorted by key, each
              u64 key | u32 value length | value bytes (max size, unused tail ignored)

Slots are fixed-size, so lookups are a binary search over the keys and an
insert or removal shifts the tail of the slot array by one slot. That is
several writes, so callers run them inside the memory's ``transaction()``.
"""
from __future__ import annotations

import math
import struct
from typing import Generic, Iterator, Optional

from .cell import MAX_U64
from .codec import RecordCodec, RecordT
from .errors import AllocationError, CorruptRecord, StorageError
from .memory import PAGE_SIZE, Memory

MAGIC = b"RMP"
LAYOUT_VERSION = 1

HEADER = struct.Struct("<3sBIQ")
LENGTH = struct.Struct("<Q")
LENGTH_OFFSET = 8
SLOT = struct.Struct("<QI")
KEY = struct.Struct("<Q")


class RecordMap(Generic[RecordT]):
    def __init__(self, memory: Memory, codec: RecordCodec[RecordT], length: int) -> None:
        self._memory = memory
        self._codec = codec
        self._length = length
        self._slot_size = SLOT.size + codec.max_size

    @classmethod
    def init(cls, memory: Memory, codec: RecordCodec[RecordT]) -> RecordMap[RecordT]:
        if memory.size() == 0:
            if memory.grow(1) == -1:
                raise AllocationError("cannot grow memory for a record map")
            memory.write(0, HEADER.pack(MAGIC, LAYOUT_VERSION, codec.max_size, 0))
            return cls(memory, codec, 0)

        magic, version, max_size, length = HEADER.unpack(memory.read(0, HEADER.size))
        if magic != MAGIC:
            raise StorageError(f"segment does not hold a record map (magic {magic!r})")
        if version != LAYOUT_VERSION:
            raise StorageError(f"unsupported record map version {version}")
        if max_size != codec.max_size:
            raise StorageError(
                f"record map was created for {max_size}-byte values, codec allows {codec.max_size}"
            )
        return cls(memory, codec, length)

    def reload(self) -> None:
        (self._length,) = LENGTH.unpack(self._memory.read(LENGTH_OFFSET, LENGTH.size))

    def __len__(self) -> int:
        return self._length

    def __contains__(self, key: int) -> bool:
        return _is_key(key) and self._search(key)[0]

    def __iter__(self) -> Iterator[int]:
        return self.keys()

    def get(self, key: int) -> Optional[RecordT]:
        if not _is_key(key):
            return None
        found, index = self._search(key)
        return self._read_entry(index)[1] if found else None

    def insert(self, key: int, record: RecordT) -> Optional[RecordT]:
        """Store ``record`` under ``key``, returning the record it replaced."""
        if not _is_key(key):
            raise ValueError(f"key {key} is not an unsigned 64-bit integer")
        data = self._codec.encode(record)
        found, index = self._search(key)
        if found:
            previous = self._read_entry(index)[1]
            self._write_slot(index, key, data)
            return previous

        self._ensure_capacity(self._length + 1)
        self._move(index, index + 1, self._length - index)
        self._write_slot(index, key, data)
        self._set_length(self._length + 1)
        return None

    def remove(self, key: int) -> Optional[RecordT]:
        if not _is_key(key):
            return None
        found, index = self._search(key)
        if not found:
            return None
        previous = self._read_entry(index)[1]
        self._move(index + 1, index, self._length - index - 1)
        self._set_length(self._length - 1)
        return previous

    def keys(self) -> Iterator[int]:
        for index in range(self._length):
            yield self._key_at(index)

    def values(self) -> Iterator[RecordT]:
        for _, record in self.items():
            yield record

    def items(self) -> Iterator[tuple[int, RecordT]]:
        """Lazily walk the map in ascending key order.

        Each call starts a fresh pass over whatever is stored at that moment.
        """
        index = 0
        while index < self._length:
            yield self._read_entry(index)
            index += 1

    def _search(self, key: int) -> tuple[bool, int]:
        lo, hi = 0, self._length
        while lo < hi:
            mid = (lo + hi) // 2
            current = self._key_at(mid)
            if current == key:
                return True, mid
            if current < key:
                lo = mid + 1
            else:
                hi = mid
        return False, lo

    def _offset(self, index: int) -> int:
        return HEADER.size + index * self._slot_size

    def _key_at(self, index: int) -> int:
        return KEY.unpack(self._memory.read(self._offset(index), KEY.size))[0]

    def _read_entry(self, index: int) -> tuple[int, RecordT]:
        offset = self._offset(index)
        key, length = SLOT.unpack(self._memory.read(offset, SLOT.size))
        if length > self._codec.max_size:
            raise CorruptRecord(f"slot {index} claims {length} bytes, limit is {self._codec.max_size}")
        return key, self._codec.decode(self._memory.read(offset + SLOT.size, length))

    def _write_slot(self, index: int, key: int, data: bytes) -> None:
        self._memory.write(self._offset(index), SLOT.pack(key, len(data)) + data)

    def _move(self, source: int, target: int, count: int) -> None:
        if count <= 0:
            return
        block = self._memory.read(self._offset(source), count * self._slot_size)
        self._memory.write(self._offset(target), block)

    def _ensure_capacity(self, entries: int) -> None:
        needed_pages = math.ceil(self._offset(entries) / PAGE_SIZE)
        missing = needed_pages - self._memory.size()
        if missing > 0 and self._memory.grow(missing) == -1:
            raise AllocationError(f"cannot grow record map to {entries} entries")

    def _set_length(self, length: int) -> None:
        self._memory.write(LENGTH_OFFSET, LENGTH.pack(length))
        self._length = length


def _is_key(key: int) -> bool:
    return isinstance(key, int) and 0 <= key <= MAX_U64
