from __future__ import annotations

import pytest

from teamtasks.domain.entities import MemberEntity
from teamtasks.domain.enums import EntityKind
from teamtasks.domain.errors import InvalidInput, NotAuthorized, NotFound
from teamtasks.infra.memory import VectorMemory
from teamtasks.infra.repository import MemberRepository
from teamtasks.infra.state import StableState
from teamtasks.services.access import AdminPolicy
from teamtasks.services.member_service import MemberService

ADMIN = "2vxsx-fae"


class ReviewerPolicy:
    """Treats a whole group of identities as administrators."""

    def __init__(self, admins: set[str]) -> None:
        self.admins = admins

    def is_admin(self, identity: str) -> bool:
        return identity in self.admins


def make_service(policy=None) -> MemberService:
    state = StableState.init(VectorMemory(), bucket_size_in_pages=1)
    return MemberService(MemberRepository(state), policy or AdminPolicy(ADMIN))


def test_admin_adds_and_reads_members() -> None:
    service = make_service()

    first = service.add_member(ADMIN, {"principal_id": "m1"})
    second = service.add_member(ADMIN, {"principal_id": "aaaaa-aa"})

    assert first == MemberEntity(id=0, principal_id="m1")
    assert service.get_member(1) == second
    assert service.get_all_members() == [first, second]


def test_is_member_is_exact_match() -> None:
    service = make_service()
    service.add_member(ADMIN, {"principal_id": "m1"})

    assert service.is_member("m1") is True
    assert service.is_member("M1") is False
    assert service.is_member("m") is False


def test_member_writes_require_admin() -> None:
    service = make_service()
    member = service.add_member(ADMIN, {"principal_id": "m1"})

    with pytest.raises(NotAuthorized):
        service.add_member("m1", {"principal_id": "m2"})
    with pytest.raises(NotAuthorized):
        service.update_member("m1", member.id, {"principal_id": "m2"})
    with pytest.raises(NotAuthorized):
        service.delete_member("m1", member.id)
    assert service.get_all_members() == [member]


def test_invalid_identity_is_rejected() -> None:
    service = make_service()

    for principal in ("", "   ", "bad id", "-leading", "trailing-", "x" * 64):
        with pytest.raises(InvalidInput):
            service.add_member(ADMIN, {"principal_id": principal})
    with pytest.raises(InvalidInput):
        service.add_member(ADMIN, {})
    assert service.get_all_members() == []


def test_update_replaces_identity() -> None:
    service = make_service()
    member = service.add_member(ADMIN, {"principal_id": "m1"})

    updated = service.update_member(ADMIN, member.id, {"principal_id": "m9"})

    assert updated == MemberEntity(id=member.id, principal_id="m9")
    assert service.is_member("m1") is False
    assert service.is_member("m9") is True


def test_missing_member_is_not_found() -> None:
    service = make_service()

    for call in (
        lambda: service.get_member(3),
        lambda: service.update_member(ADMIN, 3, {"principal_id": "m1"}),
        lambda: service.delete_member(ADMIN, 3),
    ):
        with pytest.raises(NotFound) as excinfo:
            call()
        assert excinfo.value.kind is EntityKind.MEMBER


def test_delete_is_final() -> None:
    service = make_service()
    member = service.add_member(ADMIN, {"principal_id": "m1"})

    assert service.delete_member(ADMIN, member.id) == member
    with pytest.raises(NotFound):
        service.delete_member(ADMIN, member.id)
    assert service.add_member(ADMIN, {"principal_id": "m1"}).id == 1


def test_authorization_policy_is_swappable() -> None:
    service = make_service(ReviewerPolicy({"alice", "bob"}))

    service.add_member("alice", {"principal_id": "m1"})
    service.add_member("bob", {"principal_id": "m2"})
    with pytest.raises(NotAuthorized):
        service.add_member(ADMIN, {"principal_id": "m3"})
