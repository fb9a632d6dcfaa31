from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator

from teamtasks.config import PROJECT_ROOT, Settings
from teamtasks.domain.entities import MemberEntity, TaskEntity

from .cell import ScalarCell
from .codec import RecordCodec
from .counter import IdCounter
from .db import create_db_engine, init_db, make_session_factory
from .memory import FileMemory, Memory, SqlMemory, VectorMemory
from .memory_manager import DEFAULT_BUCKET_SIZE_IN_PAGES, MemoryManager
from .record_map import RecordMap

logger = logging.getLogger(__name__)

MAX_RECORD_SIZE = 1024


class MemoryTag(IntEnum):
    TASK_COUNTER = 0
    TASKS = 1
    MEMBERS = 2
    MEMBER_COUNTER = 3


@dataclass(frozen=True)
class StableState:
    """Every persistent structure, each bound to its own segment."""

    manager: MemoryManager
    task_ids: IdCounter
    tasks: RecordMap[TaskEntity]
    members: RecordMap[MemberEntity]
    member_ids: IdCounter

    @classmethod
    def init(
        cls,
        memory: Memory,
        bucket_size_in_pages: int = DEFAULT_BUCKET_SIZE_IN_PAGES,
    ) -> StableState:
        with memory.transaction():
            manager = MemoryManager.init(memory, bucket_size_in_pages)
            state = cls(
                manager=manager,
                task_ids=IdCounter(ScalarCell.init(manager.claim(MemoryTag.TASK_COUNTER), 0)),
                tasks=RecordMap.init(
                    manager.claim(MemoryTag.TASKS), RecordCodec(TaskEntity, MAX_RECORD_SIZE)
                ),
                members=RecordMap.init(
                    manager.claim(MemoryTag.MEMBERS), RecordCodec(MemberEntity, MAX_RECORD_SIZE)
                ),
                member_ids=IdCounter(ScalarCell.init(manager.claim(MemoryTag.MEMBER_COUNTER), 0)),
            )
        logger.info(
            "Stable state ready: %d tasks, %d members", len(state.tasks), len(state.members)
        )
        return state

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Apply every write made inside the block as one unit.

        On failure the memory rolls back and the cached lengths, counters and
        segment sizes are re-read, so the structures match what is stored.
        """
        try:
            with self.manager.memory.transaction():
                yield
        except BaseException:
            logger.error("Rolled back a partially applied write")
            self.reload()
            raise

    def reload(self) -> None:
        self.manager.reload()
        for structure in (self.task_ids, self.tasks, self.members, self.member_ids):
            structure.reload()


def open_memory(settings: Settings) -> Memory:
    backend = settings.storage_backend
    if backend == "sql":
        engine = create_db_engine(settings.database_url)
        init_db(engine)
        return SqlMemory(make_session_factory(engine), settings.max_memory_pages, engine)
    if backend == "file":
        return FileMemory(PROJECT_ROOT / settings.memory_path, settings.max_memory_pages)
    if backend == "memory":
        logger.warning("Using process memory; nothing will survive a restart")
        return VectorMemory(settings.max_memory_pages)
    raise RuntimeError(f"Unknown STORAGE_BACKEND {backend!r}; expected sql, file or memory.")
