"""Recoverable errors raised by the task and member services.

Every error here is a deterministic function of the stored state and the
submitted input: repeating the same call against the same state raises the
same error. Storage failures live in ``teamtasks.infra.errors`` and are not
part of this hierarchy.
"""
from __future__ import annotations

from .enums import EntityKind


class RegistryError(Exception):
    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidInput(RegistryError):
    code = "invalid_input"


class NotFound(RegistryError):
    """A record of ``kind`` is missing, or a query matched nothing."""

    code = "not_found"

    def __init__(self, kind: EntityKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind

    def to_dict(self) -> dict:
        return {"error": self.code, "kind": self.kind.value, "message": self.message}


class NotAuthorized(RegistryError):
    code = "not_authorized"


class TaskAlreadyDone(RegistryError):
    code = "task_already_done"


class DeadlineAlreadyPassed(RegistryError):
    code = "deadline_already_passed"
