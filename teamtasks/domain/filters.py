from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .entities import TaskEntity
from .enums import TaskStatus


@dataclass(frozen=True)
class TaskFilters:
    search: str | None = None
    assignee: str | None = None
    status: Optional[TaskStatus] = None
    completed: bool | None = None

    def matches(self, task: TaskEntity, now: int) -> bool:
        if self.search:
            needle = self.search.casefold()
            if needle not in task.title.casefold() and needle not in task.description.casefold():
                return False
        if self.assignee and self.assignee.casefold() not in task.assigned_to.casefold():
            return False
        if self.completed is not None and task.is_done != self.completed:
            return False
        if self.status is not None and task.status(now) != self.status:
            return False
        return True
