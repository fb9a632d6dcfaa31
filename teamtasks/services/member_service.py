from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping

from teamtasks.domain.entities import MemberEntity
from teamtasks.domain.enums import EntityKind
from teamtasks.domain.errors import NotFound
from teamtasks.domain.payloads import MemberPayload, parse_payload
from teamtasks.infra.repository import MemberRepository

from .access import AuthorizationPolicy, require_admin

logger = logging.getLogger(__name__)


class MemberService:
    """Member registration, administered by the configured admin.

    Deleting a member leaves the tasks assigned to it untouched; those tasks
    keep the old identity as their assignee.
    """

    def __init__(self, repo: MemberRepository, policy: AuthorizationPolicy) -> None:
        self._repo = repo
        self._policy = policy

    def get_member(self, member_id: int) -> MemberEntity:
        member = self._repo.get_member(member_id)
        if member is None:
            raise NotFound(EntityKind.MEMBER, f"member with id={member_id} not found")
        return member

    def get_all_members(self) -> list[MemberEntity]:
        return self._repo.list_members()

    def is_member(self, identity: str) -> bool:
        return self._repo.find_by_principal(identity) is not None

    def add_member(self, caller: str, data: MemberPayload | Mapping[str, Any]) -> MemberEntity:
        require_admin(self._policy, caller, "add members")
        payload = parse_payload(MemberPayload, data)
        member = self._repo.create_member(payload.principal_id)
        logger.info("Added member %d (%s)", member.id, member.principal_id)
        return member

    def update_member(
        self, caller: str, member_id: int, data: MemberPayload | Mapping[str, Any]
    ) -> MemberEntity:
        require_admin(self._policy, caller, "update members")
        payload = parse_payload(MemberPayload, data)
        member = self.get_member(member_id)
        updated = self._repo.save_member(replace(member, principal_id=payload.principal_id))
        logger.info("Updated member %d: %s -> %s", member_id, member.principal_id, updated.principal_id)
        return updated

    def delete_member(self, caller: str, member_id: int) -> MemberEntity:
        require_admin(self._policy, caller, "delete members")
        member = self._repo.delete_member(member_id)
        if member is None:
            raise NotFound(EntityKind.MEMBER, f"member with id={member_id} not found")
        logger.info("Deleted member %d (%s)", member.id, member.principal_id)
        return member
