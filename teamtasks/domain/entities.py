from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .enums import TaskStatus

NANOS_PER_HOUR = 60 * 60 * 1_000_000_000


def hours_to_nanoseconds(hours: int) -> int:
    return hours * NANOS_PER_HOUR


@dataclass(frozen=True)
class TaskEntity:
    id: int
    title: str
    description: str
    assigned_to: str
    is_done: bool
    start_time: int
    deadline: int
    updated_at: Optional[int] = None

    @property
    def deadline_at(self) -> int:
        return self.start_time + hours_to_nanoseconds(self.deadline)

    def is_expired(self, now: int) -> bool:
        return not self.is_done and self.deadline_at <= now

    def status(self, now: int) -> TaskStatus:
        if self.is_done:
            return TaskStatus.COMPLETED
        if self.deadline_at <= now:
            return TaskStatus.EXPIRED
        return TaskStatus.OPEN


@dataclass(frozen=True)
class MemberEntity:
    id: int
    principal_id: str
