from __future__ import annotations

from qaflow.domain import Principal
from qaflow.engine import engine
from qaflow.outcome import ErrorKind
from qaflow.store import store


def test_create_project_registers_creator_as_manager(team):
    members = store.projects_repository.list_members(project_id=team.project_id)
    roles = {m["user_id"]: m["role"] for m in members}
    assert roles == {"user_alice": "MANAGER", "user_bob": "MEMBER", "user_carol": "MEMBER"}


def test_get_project_includes_member_profiles(team):
    outcome = engine.projects.get_project(project_id=team.project_id, principal=team.assignee)
    assert outcome.ok
    names = sorted(m["user"]["name"] for m in outcome.value["members"])
    assert names == ["Alice", "Bob", "Carol"]


def test_create_project_requires_name():
    outcome = engine.projects.create_project(principal=Principal(user_id="user_alice"), name="  ")
    assert outcome.kind == ErrorKind.INVALID


def test_add_member_requires_known_user(team):
    outcome = engine.projects.add_member(
        project_id=team.project_id,
        principal=team.manager,
        user_id="user_ghost",
    )
    assert outcome.kind == ErrorKind.NOT_FOUND


def test_add_member_rejects_unknown_role(team):
    outcome = engine.projects.add_member(
        project_id=team.project_id,
        principal=team.manager,
        user_id=team.outsider.user_id,
        role="OWNER",
    )
    assert outcome.kind == ErrorKind.INVALID


def test_plain_member_cannot_add_members(team):
    outcome = engine.projects.add_member(
        project_id=team.project_id,
        principal=team.member,
        user_id=team.outsider.user_id,
    )
    assert outcome.kind == ErrorKind.FORBIDDEN


def test_creator_cannot_be_demoted_or_removed(team):
    demote = engine.projects.add_member(
        project_id=team.project_id,
        principal=team.manager,
        user_id=team.manager.user_id,
        role="MEMBER",
    )
    remove = engine.projects.remove_member(
        project_id=team.project_id,
        principal=team.manager,
        user_id=team.manager.user_id,
    )
    assert demote.kind == ErrorKind.INVALID
    assert remove.kind == ErrorKind.INVALID


def test_remove_member_revokes_access(team):
    outcome = engine.projects.remove_member(
        project_id=team.project_id,
        principal=team.manager,
        user_id=team.member.user_id,
    )
    assert outcome.ok
    again = engine.projects.remove_member(
        project_id=team.project_id,
        principal=team.manager,
        user_id=team.member.user_id,
    )
    assert again.kind == ErrorKind.NOT_FOUND
    denied = engine.access.can_access_project(project_id=team.project_id, principal=team.member)
    assert denied.kind == ErrorKind.FORBIDDEN


def test_upsert_user_is_limited_to_own_profile(team):
    other = engine.projects.upsert_user(principal=team.member, user_id="user_bob", name="Robert", email="")
    assert other.kind == ErrorKind.FORBIDDEN

    own = engine.projects.upsert_user(principal=team.assignee, user_id="user_bob", name="Robert", email="")
    by_admin = engine.projects.upsert_user(principal=team.admin, user_id="user_erin", name="Erin", email="")
    assert own.ok and own.value["name"] == "Robert"
    assert by_admin.ok


def test_register_media_file_records_uploader(team):
    outcome = engine.projects.register_media_file(
        principal=team.assignee,
        file_name="photo.jpg",
        file_type="image/jpeg",
        file_size=1024,
        storage_url="s3://bucket/photo.jpg",
    )
    assert outcome.ok
    assert outcome.value["uploader_id"] == "user_bob"
    assert outcome.value["media_file_id"].startswith("media_")
