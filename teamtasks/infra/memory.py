"""Durable, page-granular memory regions.

A memory starts empty and only ever grows, one 64 KiB page at a time. Bytes
that were grown but never written read back as zero. Outside a transaction,
every write and grow is persisted by the time the call returns.

``transaction()`` groups writes into one unit: either all of them persist or,
if the block raises, none do. Transactions nest by joining the outermost one.
Growth is not undone by a rollback; the extra pages stay zeroed and unused.
"""
from __future__ import annotations

import os
import struct
import zlib
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Iterator, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .errors import OutOfBounds
from .models import MemoryBlockModel, MemoryStateModel

PAGE_SIZE = 64 * 1024
BLOCK_SIZE = 4096

JOURNAL_MAGIC = b"JRNL"
JOURNAL_HEADER = struct.Struct("<4sQ")
JOURNAL_ENTRY = struct.Struct("<Q")
JOURNAL_TRAILER = struct.Struct("<4sI")
JOURNAL_END = b"DONE"


class Memory(Protocol):
    def size(self) -> int: ...

    def grow(self, pages: int) -> int: ...

    def read(self, offset: int, length: int) -> bytes: ...

    def write(self, offset: int, data: bytes) -> None: ...

    def transaction(self) -> ContextManager[None]: ...

    def close(self) -> None: ...


def check_bounds(size_pages: int, offset: int, length: int) -> None:
    if offset < 0 or length < 0 or offset + length > size_pages * PAGE_SIZE:
        raise OutOfBounds(
            f"access [{offset}, {offset + length}) outside memory of {size_pages} pages"
        )


def _can_grow(current: int, pages: int, max_pages: int | None) -> bool:
    return max_pages is None or current + pages <= max_pages


def _block_spans(offset: int, length: int) -> Iterator[tuple[int, int, int, int]]:
    """Yield ``(block_no, block_start, lo, hi)`` for each block ``[offset, offset+length)`` touches."""
    end = offset + length
    for block_no in range(offset // BLOCK_SIZE, (end - 1) // BLOCK_SIZE + 1):
        block_start = block_no * BLOCK_SIZE
        yield block_no, block_start, max(offset, block_start), min(end, block_start + BLOCK_SIZE)


class BufferedMemory:
    """Base for memories that buffer a transaction's writes as dirty blocks.

    Subclasses provide raw access and ``_commit``, which must make every dirty
    block durable as one unit.
    """

    def __init__(self) -> None:
        self._dirty: Optional[dict[int, bytearray]] = None

    def size(self) -> int:
        raise NotImplementedError

    def read(self, offset: int, length: int) -> bytes:
        check_bounds(self.size(), offset, length)
        data = self._read_raw(offset, length)
        if not self._dirty or length == 0:
            return data
        buffer = bytearray(data)
        for block_no, block_start, lo, hi in _block_spans(offset, length):
            image = self._dirty.get(block_no)
            if image is not None:
                buffer[lo - offset:hi - offset] = image[lo - block_start:hi - block_start]
        return bytes(buffer)

    def write(self, offset: int, data: bytes) -> None:
        check_bounds(self.size(), offset, len(data))
        if not data:
            return
        if self._dirty is None:
            self._write_raw(offset, data)
            return
        for block_no, block_start, lo, hi in _block_spans(offset, len(data)):
            image = self._dirty.get(block_no)
            if image is None:
                image = self._dirty[block_no] = bytearray(self._read_raw(block_start, BLOCK_SIZE))
            image[lo - block_start:hi - block_start] = data[lo - offset:hi - offset]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._dirty is not None:
            yield
            return
        self._dirty = {}
        try:
            yield
        except BaseException:
            self._dirty = None
            raise
        dirty, self._dirty = self._dirty, None
        if dirty:
            self._commit(dirty)

    def close(self) -> None:
        pass

    def _read_raw(self, offset: int, length: int) -> bytes:
        raise NotImplementedError

    def _write_raw(self, offset: int, data: bytes) -> None:
        raise NotImplementedError

    def _commit(self, blocks: dict[int, bytearray]) -> None:
        raise NotImplementedError


class VectorMemory(BufferedMemory):
    def __init__(self, max_pages: int | None = None) -> None:
        super().__init__()
        self._buffer = bytearray()
        self._max_pages = max_pages

    def size(self) -> int:
        return len(self._buffer) // PAGE_SIZE

    def grow(self, pages: int) -> int:
        current = self.size()
        if not _can_grow(current, pages, self._max_pages):
            return -1
        self._buffer.extend(bytes(pages * PAGE_SIZE))
        return current

    def _read_raw(self, offset: int, length: int) -> bytes:
        return bytes(self._buffer[offset:offset + length])

    def _write_raw(self, offset: int, data: bytes) -> None:
        self._buffer[offset:offset + len(data)] = data

    def _commit(self, blocks: dict[int, bytearray]) -> None:
        for block_no, image in blocks.items():
            self._write_raw(block_no * BLOCK_SIZE, image)


class FileMemory(BufferedMemory):
    """Memory kept in one file, fsynced after every change.

    A transaction commits through a redo journal next to the file: the dirty
    blocks are written and fsynced to ``<name>.journal`` first, then applied.
    A complete journal found on open is replayed; a torn one is discarded.
    """

    def __init__(self, path: str | Path, max_pages: int | None = None) -> None:
        super().__init__()
        self._path = Path(path)
        self._journal = self._path.with_name(self._path.name + ".journal")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)
        self._file = open(self._path, "r+b")
        self._max_pages = max_pages
        self._recover()

    def size(self) -> int:
        return os.fstat(self._file.fileno()).st_size // PAGE_SIZE

    def grow(self, pages: int) -> int:
        current = self.size()
        if not _can_grow(current, pages, self._max_pages):
            return -1
        self._file.truncate((current + pages) * PAGE_SIZE)
        self._sync()
        return current

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> FileMemory:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _read_raw(self, offset: int, length: int) -> bytes:
        self._file.seek(offset)
        return self._file.read(length)

    def _write_raw(self, offset: int, data: bytes) -> None:
        self._file.seek(offset)
        self._file.write(data)
        self._sync()

    def _commit(self, blocks: dict[int, bytearray]) -> None:
        self._write_journal(blocks)
        self._apply(blocks)
        self._journal.unlink()

    def _write_journal(self, blocks: dict[int, bytearray]) -> None:
        body = b"".join(
            JOURNAL_ENTRY.pack(block_no) + bytes(image) for block_no, image in sorted(blocks.items())
        )
        with open(self._journal, "wb") as journal:
            journal.write(JOURNAL_HEADER.pack(JOURNAL_MAGIC, len(blocks)))
            journal.write(body)
            journal.write(JOURNAL_TRAILER.pack(JOURNAL_END, zlib.crc32(body)))
            journal.flush()
            os.fsync(journal.fileno())

    def _apply(self, blocks: dict[int, bytes]) -> None:
        for block_no, image in blocks.items():
            self._file.seek(block_no * BLOCK_SIZE)
            self._file.write(image)
        self._sync()

    def _recover(self) -> None:
        if not self._journal.exists():
            return
        blocks = _parse_journal(self._journal.read_bytes())
        if blocks is not None:
            self._apply(blocks)
        self._journal.unlink()

    def _sync(self) -> None:
        self._file.flush()
        os.fsync(self._file.fileno())


def _parse_journal(raw: bytes) -> Optional[dict[int, bytes]]:
    """Decode a complete journal, or return None for a torn or foreign one."""
    if len(raw) < JOURNAL_HEADER.size + JOURNAL_TRAILER.size:
        return None
    magic, count = JOURNAL_HEADER.unpack_from(raw)
    entry_size = JOURNAL_ENTRY.size + BLOCK_SIZE
    body_end = JOURNAL_HEADER.size + count * entry_size
    if magic != JOURNAL_MAGIC or len(raw) != body_end + JOURNAL_TRAILER.size:
        return None
    body = raw[JOURNAL_HEADER.size:body_end]
    end, checksum = JOURNAL_TRAILER.unpack_from(raw, body_end)
    if end != JOURNAL_END or checksum != zlib.crc32(body):
        return None
    blocks = {}
    for position in range(0, len(body), entry_size):
        (block_no,) = JOURNAL_ENTRY.unpack_from(body, position)
        blocks[block_no] = body[position + JOURNAL_ENTRY.size:position + entry_size]
    return blocks


class SqlMemory:
    """Memory stored as fixed-size blocks in a SQL table.

    Blocks that were never written have no row and read as zeros. The page
    count lives in a single ``memory_state`` row. A transaction keeps one
    session open and commits it once; outside one, each call commits alone.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_pages: int | None = None,
        engine: Engine | None = None,
    ) -> None:
        self._sessions = session_factory
        self._max_pages = max_pages
        self._engine = engine
        self._session: Session | None = None
        with self._sessions() as session:
            state = session.get(MemoryStateModel, 1)
            if state is None:
                session.add(MemoryStateModel(id=1, size_pages=0))
                session.commit()
                self._size = 0
            else:
                self._size = state.size_pages

    def size(self) -> int:
        return self._size

    def grow(self, pages: int) -> int:
        current = self._size
        if not _can_grow(current, pages, self._max_pages):
            return -1
        with self._scope() as session:
            state = session.get(MemoryStateModel, 1)
            state.size_pages = current + pages
        self._size = current + pages
        return current

    def read(self, offset: int, length: int) -> bytes:
        check_bounds(self._size, offset, length)
        if length == 0:
            return b""
        first, last = offset // BLOCK_SIZE, (offset + length - 1) // BLOCK_SIZE
        buffer = bytearray((last - first + 1) * BLOCK_SIZE)
        with self._scope() as session:
            for block in session.scalars(self._blocks_between(first, last)):
                start = (block.block_no - first) * BLOCK_SIZE
                buffer[start:start + BLOCK_SIZE] = block.data
        start = offset - first * BLOCK_SIZE
        return bytes(buffer[start:start + length])

    def write(self, offset: int, data: bytes) -> None:
        check_bounds(self._size, offset, len(data))
        if not data:
            return
        first, last = offset // BLOCK_SIZE, (offset + len(data) - 1) // BLOCK_SIZE
        with self._scope() as session:
            existing = {
                block.block_no: block
                for block in session.scalars(self._blocks_between(first, last))
            }
            for block_no, block_start, lo, hi in _block_spans(offset, len(data)):
                block = existing.get(block_no)
                patched = bytearray(block.data) if block else bytearray(BLOCK_SIZE)
                patched[lo - block_start:hi - block_start] = data[lo - offset:hi - offset]
                if block is None:
                    session.add(MemoryBlockModel(block_no=block_no, data=bytes(patched)))
                else:
                    block.data = bytes(patched)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._session is not None:
            yield
            return
        size = self._size
        with self._sessions() as session:
            self._session = session
            try:
                yield
                session.commit()
            except BaseException:
                session.rollback()
                self._size = size
                raise
            finally:
                self._session = None

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()

    @contextmanager
    def _scope(self) -> Iterator[Session]:
        if self._session is not None:
            # Flushed so later reads in the same transaction see this call.
            yield self._session
            self._session.flush()
            return
        with self._sessions() as session:
            yield session
            session.commit()

    @staticmethod
    def _blocks_between(first: int, last: int):
        return (
            select(MemoryBlockModel)
            .where(MemoryBlockModel.block_no.between(first, last))
            .order_by(MemoryBlockModel.block_no.asc())
        )
