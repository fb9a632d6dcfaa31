from __future__ import annotations

import pytest

from teamtasks.domain.entities import MemberEntity
from teamtasks.infra.cell import MAX_U64, ScalarCell
from teamtasks.infra.codec import RecordCodec
from teamtasks.infra.counter import IdCounter
from teamtasks.infra.errors import CellInitError, CellSetError, CounterExhausted, SegmentAlreadyClaimed
from teamtasks.infra.memory import VectorMemory
from teamtasks.infra.memory_manager import MemoryManager
from teamtasks.infra.record_map import RecordMap
from teamtasks.infra.state import MemoryTag, StableState


def test_cell_keeps_value_across_reload() -> None:
    memory = VectorMemory()
    cell = ScalarCell.init(MemoryManager.init(memory, 1).get(0), 7)
    assert cell.get() == 7

    assert cell.set(42) == 7
    reloaded = ScalarCell.init(MemoryManager.init(memory).get(0), 0)
    assert reloaded.get() == 42


def test_cell_rejects_values_outside_u64() -> None:
    cell = ScalarCell.init(MemoryManager.init(VectorMemory(), 1).get(0), 1)

    with pytest.raises(CellSetError):
        cell.set(-1)
    with pytest.raises(CellSetError):
        cell.set(MAX_U64 + 1)
    assert cell.get() == 1


def test_cell_refuses_segment_holding_something_else() -> None:
    manager = MemoryManager.init(VectorMemory(), 1)
    RecordMap.init(manager.get(0), RecordCodec(MemberEntity, 64))

    with pytest.raises(CellInitError):
        ScalarCell.init(manager.get(0), 0)


def test_counter_returns_pre_increment_values() -> None:
    counter = IdCounter(ScalarCell.init(MemoryManager.init(VectorMemory(), 1).get(0), 0))

    ids = [counter.next() for _ in range(100)]

    assert ids == list(range(100))
    assert counter.peek() == 100


def test_counter_continues_after_reload() -> None:
    memory = VectorMemory()
    counter = IdCounter(ScalarCell.init(MemoryManager.init(memory, 1).get(0), 0))
    counter.next()
    counter.next()

    reloaded = IdCounter(ScalarCell.init(MemoryManager.init(memory).get(0), 0))
    assert reloaded.next() == 2


def test_counter_exhaustion() -> None:
    counter = IdCounter(ScalarCell.init(MemoryManager.init(VectorMemory(), 1).get(0), MAX_U64))
    with pytest.raises(CounterExhausted):
        counter.next()


def test_task_and_member_counters_are_independent() -> None:
    state = StableState.init(VectorMemory(), bucket_size_in_pages=1)

    task_ids = [state.task_ids.next() for _ in range(3)]
    member_ids = [state.member_ids.next() for _ in range(2)]

    assert task_ids == [0, 1, 2]
    assert member_ids == [0, 1]


def test_state_tags_cannot_be_claimed_again() -> None:
    state = StableState.init(VectorMemory(), bucket_size_in_pages=1)
    with pytest.raises(SegmentAlreadyClaimed):
        state.manager.claim(MemoryTag.MEMBER_COUNTER)
