from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Callable, Mapping

from teamtasks.domain.entities import TaskEntity
from teamtasks.domain.enums import EntityKind, TaskStatus
from teamtasks.domain.errors import DeadlineAlreadyPassed, NotAuthorized, NotFound, TaskAlreadyDone
from teamtasks.domain.filters import TaskFilters
from teamtasks.domain.payloads import TaskPayload, parse_payload
from teamtasks.infra.repository import MemberRepository, TaskRepository

from .access import AuthorizationPolicy, require_admin

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


class TaskService:
    """Task lifecycle: open until completed by its assignee or until the deadline.

    Updating a task replaces its title, description, assignee and deadline
    but keeps its completion flag and start time.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        members: MemberRepository,
        policy: AuthorizationPolicy,
        clock: Clock = time.time_ns,
    ) -> None:
        self._repo = tasks
        self._members = members
        self._policy = policy
        self._clock = clock

    def list_tasks(self, filters: TaskFilters) -> list[TaskEntity]:
        return self._repo.list_tasks(filters, self._clock())

    def get_task(self, task_id: int) -> TaskEntity:
        task = self._repo.get_task(task_id)
        if task is None:
            raise NotFound(EntityKind.TASK, f"task with id={task_id} not found")
        return task

    def get_all_tasks(self, status: TaskStatus | None = None) -> list[TaskEntity]:
        message = "no tasks stored" if status is None else f"no {status.value} tasks stored"
        return self._require_matches(TaskFilters(status=status), message)

    def search_tasks(self, text: str) -> list[TaskEntity]:
        return self._require_matches(
            TaskFilters(search=text), f"no task title or description contains {text!r}"
        )

    def get_tasks_by_member(self, identity: str, completed: bool | None = None) -> list[TaskEntity]:
        return self._require_matches(
            TaskFilters(assignee=identity, completed=completed),
            f"no tasks assigned to {identity!r}",
        )

    def create_task(self, caller: str, data: TaskPayload | Mapping[str, Any]) -> TaskEntity:
        require_admin(self._policy, caller, "create tasks")
        payload = parse_payload(TaskPayload, data)
        self._require_member(payload.assigned_to)

        task = self._repo.create_task({
            "title": payload.title,
            "description": payload.description,
            "assigned_to": payload.assigned_to,
            "is_done": False,
            "start_time": self._clock(),
            "deadline": payload.deadline,
            "updated_at": None,
        })
        logger.info("Created task %d assigned to %s", task.id, task.assigned_to)
        return task

    def update_task(
        self, caller: str, task_id: int, data: TaskPayload | Mapping[str, Any]
    ) -> TaskEntity:
        require_admin(self._policy, caller, "update tasks")
        payload = parse_payload(TaskPayload, data)
        task = self.get_task(task_id)
        now = self._clock()
        if task.deadline_at <= now:
            raise DeadlineAlreadyPassed(f"deadline of task {task_id} has already passed")
        self._require_member(payload.assigned_to)

        updated = self._repo.save_task(replace(
            task,
            title=payload.title,
            description=payload.description,
            assigned_to=payload.assigned_to,
            deadline=payload.deadline,
            updated_at=now,
        ))
        logger.info("Updated task %d", task_id)
        return updated

    def complete_task(self, caller: str, task_id: int) -> TaskEntity:
        task = self.get_task(task_id)
        if caller != task.assigned_to:
            logger.warning("Refused completion of task %d by %s", task_id, caller)
            raise NotAuthorized(f"only the assignee of task {task_id} may complete it")
        if task.is_done:
            raise TaskAlreadyDone(f"task {task_id} is already completed")
        if task.is_expired(self._clock()):
            raise DeadlineAlreadyPassed(f"deadline of task {task_id} has already passed")

        completed = self._repo.save_task(replace(task, is_done=True))
        logger.info("Task %d completed by %s", task_id, caller)
        return completed

    def delete_task(self, caller: str, task_id: int) -> TaskEntity:
        require_admin(self._policy, caller, "delete tasks")
        task = self._repo.delete_task(task_id)
        if task is None:
            raise NotFound(EntityKind.TASK, f"task with id={task_id} not found")
        logger.info("Deleted task %d", task_id)
        return task

    def get_stats(self) -> dict[str, int]:
        return self._repo.get_stats(self._clock())

    def _require_member(self, identity: str) -> None:
        if self._members.find_by_principal(identity) is None:
            raise NotFound(EntityKind.MEMBER, f"no member registered as {identity!r}")

    def _require_matches(self, filters: TaskFilters, message: str) -> list[TaskEntity]:
        tasks = self.list_tasks(filters)
        if not tasks:
            raise NotFound(EntityKind.TASK, message)
        return tasks
