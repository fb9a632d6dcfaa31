"""Submitted fields for task and member writes."""
from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidInput

IDENTITY_PATTERN = r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$"

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 3
DESCRIPTION_MAX_LENGTH = 500
MAX_DEADLINE_HOURS = 255


class TaskPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid", frozen=True)

    title: str = Field(min_length=TITLE_MIN_LENGTH, max_length=TITLE_MAX_LENGTH)
    description: str = Field(min_length=DESCRIPTION_MIN_LENGTH, max_length=DESCRIPTION_MAX_LENGTH)
    assigned_to: str = Field(pattern=IDENTITY_PATTERN)
    deadline: int = Field(ge=1, le=MAX_DEADLINE_HOURS, description="Hours from the task start")


class MemberPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid", frozen=True)

    principal_id: str = Field(pattern=IDENTITY_PATTERN)


PayloadT = TypeVar("PayloadT", bound=BaseModel)


def parse_payload(model: type[PayloadT], data: PayloadT | Mapping[str, Any]) -> PayloadT:
    """Validate ``data`` into ``model``; any failure becomes ``InvalidInput``."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'payload'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidInput(details) from exc
