"""A single persisted u64 living at the start of its own segment.

Layout: magic b"CEL", layout version, u32 value length, then the value
itself as a little-endian u64.
"""
from __future__ import annotations

import struct

from .errors import AllocationError, CellInitError, CellSetError
from .memory import Memory

MAGIC = b"CEL"
LAYOUT_VERSION = 1
MAX_U64 = 2**64 - 1

HEADER = struct.Struct("<3sBI")
VALUE = struct.Struct("<Q")


class ScalarCell:
    def __init__(self, memory: Memory, value: int) -> None:
        self._memory = memory
        self._value = value

    @classmethod
    def init(cls, memory: Memory, initial_value: int) -> ScalarCell:
        if memory.size() == 0:
            _check_range(initial_value, CellInitError)
            if memory.grow(1) == -1:
                raise AllocationError("cannot grow memory for a scalar cell")
            cell = cls(memory, initial_value)
            memory.write(0, HEADER.pack(MAGIC, LAYOUT_VERSION, VALUE.size))
            cell._persist(initial_value)
            return cell

        magic, version, length = HEADER.unpack(memory.read(0, HEADER.size))
        if magic != MAGIC:
            raise CellInitError(f"segment does not hold a scalar cell (magic {magic!r})")
        if version != LAYOUT_VERSION:
            raise CellInitError(f"unsupported scalar cell version {version}")
        if length != VALUE.size:
            raise CellInitError(f"scalar cell holds {length} bytes, expected {VALUE.size}")
        (value,) = VALUE.unpack(memory.read(HEADER.size, VALUE.size))
        return cls(memory, value)

    def get(self) -> int:
        return self._value

    def set(self, value: int) -> int:
        """Overwrite the stored value and return the one it replaced."""
        _check_range(value, CellSetError)
        previous = self._value
        self._persist(value)
        return previous

    def reload(self) -> None:
        (self._value,) = VALUE.unpack(self._memory.read(HEADER.size, VALUE.size))

    def _persist(self, value: int) -> None:
        self._memory.write(HEADER.size, VALUE.pack(value))
        self._value = value


def _check_range(value: int, error: type[Exception]) -> None:
    if not 0 <= value <= MAX_U64:
        raise error(f"value {value} does not fit in an unsigned 64-bit cell")
