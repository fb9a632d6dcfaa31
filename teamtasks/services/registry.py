"""The operations exposed to callers.

Reads take no caller identity. Every write takes the authenticated caller
identity supplied by the transport as its first argument.
"""
from __future__ import annotations

import time
from typing import Any, Mapping

from teamtasks.domain.entities import MemberEntity, TaskEntity
from teamtasks.domain.enums import TaskStatus
from teamtasks.infra.repository import MemberRepository, TaskRepository
from teamtasks.infra.state import StableState

from .access import AuthorizationPolicy
from .member_service import MemberService
from .task_service import Clock, TaskService


class RegistryService:
    def __init__(self, tasks: TaskService, members: MemberService) -> None:
        self.tasks = tasks
        self.members = members

    @classmethod
    def from_state(
        cls,
        state: StableState,
        policy: AuthorizationPolicy,
        clock: Clock = time.time_ns,
    ) -> RegistryService:
        member_repo = MemberRepository(state)
        return cls(
            TaskService(TaskRepository(state), member_repo, policy, clock),
            MemberService(member_repo, policy),
        )

    # Tasks

    def get_task(self, task_id: int) -> TaskEntity:
        return self.tasks.get_task(task_id)

    def get_all_tasks(self, status: TaskStatus | None = None) -> list[TaskEntity]:
        return self.tasks.get_all_tasks(status)

    def search_task(self, text: str) -> list[TaskEntity]:
        return self.tasks.search_tasks(text)

    def get_tasks_by_member(self, identity: str, completed: bool | None = None) -> list[TaskEntity]:
        return self.tasks.get_tasks_by_member(identity, completed)

    def get_task_stats(self) -> dict[str, int]:
        return self.tasks.get_stats()

    def create_task(self, caller: str, fields: Mapping[str, Any]) -> TaskEntity:
        return self.tasks.create_task(caller, fields)

    def update_task(self, caller: str, task_id: int, fields: Mapping[str, Any]) -> TaskEntity:
        return self.tasks.update_task(caller, task_id, fields)

    def complete_task(self, caller: str, task_id: int) -> TaskEntity:
        return self.tasks.complete_task(caller, task_id)

    def delete_task(self, caller: str, task_id: int) -> TaskEntity:
        return self.tasks.delete_task(caller, task_id)

    # Members

    def get_member(self, member_id: int) -> MemberEntity:
        return self.members.get_member(member_id)

    def get_all_members(self) -> list[MemberEntity]:
        return self.members.get_all_members()

    def is_member(self, identity: str) -> bool:
        return self.members.is_member(identity)

    def add_member(self, caller: str, fields: Mapping[str, Any]) -> MemberEntity:
        return self.members.add_member(caller, fields)

    def update_member(self, caller: str, member_id: int, fields: Mapping[str, Any]) -> MemberEntity:
        return self.members.update_member(caller, member_id, fields)

    def delete_member(self, caller: str, member_id: int) -> MemberEntity:
        return self.members.delete_member(caller, member_id)
