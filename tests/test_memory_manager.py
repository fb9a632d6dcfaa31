from __future__ import annotations

import pytest

from teamtasks.infra.errors import OutOfBounds, SegmentAlreadyClaimed, StorageError
from teamtasks.infra.memory import PAGE_SIZE, FileMemory, VectorMemory
from teamtasks.infra.memory_manager import MemoryManager


def test_segments_do_not_overlap() -> None:
    manager = MemoryManager.init(VectorMemory(), bucket_size_in_pages=1)
    first, second = manager.get(0), manager.get(1)

    first.grow(2)
    second.grow(1)
    first.grow(1)
    first.write(0, b"a" * (3 * PAGE_SIZE))
    second.write(0, b"b" * PAGE_SIZE)

    assert first.read(0, 3 * PAGE_SIZE) == b"a" * (3 * PAGE_SIZE)
    assert second.read(0, PAGE_SIZE) == b"b" * PAGE_SIZE
    assert manager.allocated_buckets == 4


def test_new_segment_is_empty_and_zero_filled() -> None:
    manager = MemoryManager.init(VectorMemory(), bucket_size_in_pages=2)
    segment = manager.get(7)

    assert segment.size() == 0
    assert segment.grow(1) == 0
    assert segment.size() == 1
    assert segment.read(0, 16) == bytes(16)


def test_segments_survive_reopen(tmp_path) -> None:
    path = tmp_path / "stable.bin"
    with FileMemory(path) as memory:
        manager = MemoryManager.init(memory, bucket_size_in_pages=1)
        manager.get(2).grow(1)
        segment = manager.get(3)
        segment.grow(2)
        segment.write(PAGE_SIZE - 2, b"hello")

    with FileMemory(path) as memory:
        manager = MemoryManager.init(memory, bucket_size_in_pages=8)
        segment = manager.get(3)
        assert manager.bucket_size_in_pages == 1
        assert segment.size() == 2
        assert segment.read(PAGE_SIZE - 2, 5) == b"hello"
        assert manager.get(2).size() == 1


def test_get_returns_the_same_segment() -> None:
    manager = MemoryManager.init(VectorMemory(), bucket_size_in_pages=1)
    assert manager.get(4) is manager.get(4)


def test_claiming_a_tag_twice_is_rejected() -> None:
    manager = MemoryManager.init(VectorMemory(), bucket_size_in_pages=1)
    manager.claim(0)

    with pytest.raises(SegmentAlreadyClaimed):
        manager.claim(0)
    manager.claim(1)


def test_exhausted_memory_refuses_to_grow() -> None:
    manager = MemoryManager.init(VectorMemory(max_pages=2), bucket_size_in_pages=1)
    segment = manager.get(0)

    assert segment.grow(1) == 0
    assert segment.grow(1) == -1
    assert segment.size() == 1
    assert manager.get(1).grow(1) == -1


def test_access_past_segment_end_fails() -> None:
    manager = MemoryManager.init(VectorMemory(), bucket_size_in_pages=1)
    segment = manager.get(0)
    segment.grow(1)

    with pytest.raises(OutOfBounds):
        segment.read(PAGE_SIZE - 1, 2)
    with pytest.raises(OutOfBounds):
        segment.write(PAGE_SIZE, b"x")


def test_foreign_memory_contents_are_rejected() -> None:
    memory = VectorMemory()
    memory.grow(1)
    memory.write(0, b"XYZ")

    with pytest.raises(StorageError):
        MemoryManager.init(memory)


def test_tag_out_of_range_is_rejected() -> None:
    manager = MemoryManager.init(VectorMemory(), bucket_size_in_pages=1)
    with pytest.raises(ValueError):
        manager.get(255)
