from __future__ import annotations

from typing import Optional

from teamtasks.domain.entities import MemberEntity, TaskEntity
from teamtasks.domain.enums import TaskStatus
from teamtasks.domain.filters import TaskFilters

from .state import StableState


class TaskRepository:
    def __init__(self, state: StableState) -> None:
        self._state = state
        self._tasks = state.tasks
        self._ids = state.task_ids

    def list_tasks(self, filters: TaskFilters, now: int) -> list[TaskEntity]:
        return [task for task in self._tasks.values() if filters.matches(task, now)]

    def get_task(self, task_id: int) -> Optional[TaskEntity]:
        return self._tasks.get(task_id)

    def create_task(self, data: dict) -> TaskEntity:
        # Encoding happens inside the transaction, so an oversized record
        # rolls the counter back with it and no id is consumed.
        with self._state.transaction():
            task = TaskEntity(id=self._ids.next(), **data)
            self._tasks.insert(task.id, task)
        return task

    def save_task(self, task: TaskEntity) -> TaskEntity:
        with self._state.transaction():
            self._tasks.insert(task.id, task)
        return task

    def delete_task(self, task_id: int) -> Optional[TaskEntity]:
        with self._state.transaction():
            return self._tasks.remove(task_id)

    def get_stats(self, now: int) -> dict[str, int]:
        stats = {"total": 0, **{status.value: 0 for status in TaskStatus}}
        for task in self._tasks.values():
            stats["total"] += 1
            stats[task.status(now).value] += 1
        return stats


class MemberRepository:
    def __init__(self, state: StableState) -> None:
        self._state = state
        self._members = state.members
        self._ids = state.member_ids

    def list_members(self) -> list[MemberEntity]:
        return list(self._members.values())

    def get_member(self, member_id: int) -> Optional[MemberEntity]:
        return self._members.get(member_id)

    def find_by_principal(self, principal_id: str) -> Optional[MemberEntity]:
        return next(
            (member for member in self._members.values() if member.principal_id == principal_id),
            None,
        )

    def create_member(self, principal_id: str) -> MemberEntity:
        with self._state.transaction():
            member = MemberEntity(id=self._ids.next(), principal_id=principal_id)
            self._members.insert(member.id, member)
        return member

    def save_member(self, member: MemberEntity) -> MemberEntity:
        with self._state.transaction():
            self._members.insert(member.id, member)
        return member

    def delete_member(self, member_id: int) -> Optional[MemberEntity]:
        with self._state.transaction():
            return self._members.remove(member_id)
