from __future__ import annotations

import logging
from typing import Protocol

from teamtasks.domain.errors import NotAuthorized

logger = logging.getLogger(__name__)


class AuthorizationPolicy(Protocol):
    def is_admin(self, identity: str) -> bool: ...


class AdminPolicy:
    """Grants administrator rights to exactly one configured identity."""

    def __init__(self, admin_identity: str) -> None:
        self._admin_identity = admin_identity

    def is_admin(self, identity: str) -> bool:
        return identity == self._admin_identity


def require_admin(policy: AuthorizationPolicy, caller: str, action: str) -> None:
    if not policy.is_admin(caller):
        logger.warning("Refused %s for non-admin caller %s", action, caller)
        raise NotAuthorized(f"only the administrator may {action}")
