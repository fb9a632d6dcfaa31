from __future__ import annotations

from enum import StrEnum


class TaskStatus(StrEnum):
    OPEN = "open"
    COMPLETED = "completed"
    EXPIRED = "expired"


class EntityKind(StrEnum):
    TASK = "task"
    MEMBER = "member"
