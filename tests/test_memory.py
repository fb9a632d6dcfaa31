from __future__ import annotations

import pytest

from teamtasks.infra.memory import BLOCK_SIZE, PAGE_SIZE, FileMemory, VectorMemory


def test_transaction_commits_all_writes_at_once() -> None:
    memory = VectorMemory()
    memory.grow(1)

    with memory.transaction():
        memory.write(BLOCK_SIZE - 2, b"span")
        memory.write(10, b"head")
        assert memory.read(BLOCK_SIZE - 4, 8) == b"\x00\x00span\x00\x00"
        with memory.transaction():
            memory.write(10, b"HEAD")

    assert memory.read(10, 4) == b"HEAD"
    assert memory.read(BLOCK_SIZE - 2, 4) == b"span"


def test_failed_transaction_leaves_memory_untouched() -> None:
    memory = VectorMemory()
    memory.grow(1)
    memory.write(0, b"before")

    with pytest.raises(RuntimeError):
        with memory.transaction():
            memory.write(0, b"during")
            memory.grow(1)
            memory.write(PAGE_SIZE, b"new page")
            raise RuntimeError("abort")

    assert memory.read(0, 6) == b"before"
    assert memory.read(PAGE_SIZE, 8) == bytes(8)


def test_file_transaction_survives_reopen(tmp_path) -> None:
    path = tmp_path / "stable.bin"
    with FileMemory(path) as memory:
        memory.grow(1)
        with memory.transaction():
            memory.write(0, b"committed")
        with pytest.raises(RuntimeError):
            with memory.transaction():
                memory.write(0, b"discarded")
                raise RuntimeError("abort")

    assert not (tmp_path / "stable.bin.journal").exists()
    with FileMemory(path) as memory:
        assert memory.read(0, 9) == b"committed"


def test_complete_journal_is_replayed_on_open(tmp_path) -> None:
    path = tmp_path / "stable.bin"
    with FileMemory(path) as memory:
        memory.grow(1)
        image = bytearray(BLOCK_SIZE)
        image[:7] = b"pending"
        # Journal written, crash before it was applied.
        memory._write_journal({0: image})

    with FileMemory(path) as memory:
        assert memory.read(0, 7) == b"pending"
    assert not (tmp_path / "stable.bin.journal").exists()


def test_torn_journal_is_discarded_on_open(tmp_path) -> None:
    path = tmp_path / "stable.bin"
    journal = tmp_path / "stable.bin.journal"
    with FileMemory(path) as memory:
        memory.grow(1)
        memory.write(0, b"durable")
        memory._write_journal({0: bytearray(BLOCK_SIZE)})
    journal.write_bytes(journal.read_bytes()[:-3])

    with FileMemory(path) as memory:
        assert memory.read(0, 7) == b"durable"
    assert not journal.exists()
