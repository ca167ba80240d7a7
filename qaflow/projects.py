from __future__ import annotations

import logging
from typing import Any

from qaflow.access import AccessResolver
from qaflow.domain import Principal, ProjectRole, new_id, utcnow
from qaflow.outcome import ErrorKind, Outcome, WorkflowError, unwrap, workflow_operation

logger = logging.getLogger(__name__)


def _parse_role(value: str | None) -> str:
    try:
        return str(ProjectRole(str(value or ProjectRole.MEMBER).upper()))
    except ValueError:
        raise WorkflowError(ErrorKind.INVALID, f"unknown project role: {value}") from None


class ProjectService:
    def __init__(self, store: Any, access: AccessResolver) -> None:
        self._store = store
        self._access = access

    def _with_member_profiles(self, project: dict[str, Any]) -> dict[str, Any]:
        members = project.get("members") or []
        users = self._store.users_repository.get_many(user_ids=[m["user_id"] for m in members])
        return {**project, "members": [{**m, "user": users.get(m["user_id"])} for m in members]}

    @workflow_operation("create_project")
    def create_project(self, *, principal: Principal, name: str, description: str | None = None) -> Outcome:
        if not name or not name.strip():
            raise WorkflowError(ErrorKind.INVALID, "project name is required")

        def _op() -> dict[str, Any]:
            now = utcnow()
            project = self._store.projects_repository.upsert(
                project={
                    "project_id": new_id("prj"),
                    "name": name.strip(),
                    "description": description,
                    "creator_id": principal.user_id,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            self._store.projects_repository.upsert_member(
                membership={
                    "project_id": project["project_id"],
                    "user_id": principal.user_id,
                    "role": str(ProjectRole.MANAGER),
                    "created_at": now,
                }
            )
            return self._store.projects_repository.get_with_members(project_id=project["project_id"])

        project = self._store.run_in_transaction(_op)
        logger.info("project_created project_id=%s creator_id=%s", project["project_id"], principal.user_id)
        return self._with_member_profiles(project)

    @workflow_operation("get_project")
    def get_project(self, *, project_id: str, principal: Principal) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        return self._with_member_profiles(view.project)

    @workflow_operation("add_member")
    def add_member(
        self,
        *,
        project_id: str,
        principal: Principal,
        user_id: str,
        role: str | None = None,
    ) -> Outcome:
        view = unwrap(self._access.can_manage_project(project_id=project_id, principal=principal))
        parsed_role = _parse_role(role)
        if not self._store.users_repository.get_many(user_ids=[user_id]):
            raise WorkflowError(ErrorKind.NOT_FOUND, "user not found")
        if user_id == view.creator_id and parsed_role != ProjectRole.MANAGER:
            raise WorkflowError(ErrorKind.INVALID, "the project creator is always a manager")

        member = self._store.run_in_transaction(
            lambda: self._store.projects_repository.upsert_member(
                membership={
                    "project_id": view.project_id,
                    "user_id": user_id,
                    "role": parsed_role,
                    "created_at": utcnow(),
                }
            )
        )
        logger.info("project_member_saved project_id=%s user_id=%s role=%s", project_id, user_id, parsed_role)
        return member

    @workflow_operation("remove_member")
    def remove_member(self, *, project_id: str, principal: Principal, user_id: str) -> Outcome:
        view = unwrap(self._access.can_manage_project(project_id=project_id, principal=principal))
        if user_id == view.creator_id:
            raise WorkflowError(ErrorKind.INVALID, "the project creator cannot be removed")

        def _op() -> dict[str, Any]:
            if not self._store.projects_repository.delete_member(project_id=view.project_id, user_id=user_id):
                raise WorkflowError(ErrorKind.NOT_FOUND, "membership not found")
            return {"project_id": view.project_id, "user_id": user_id, "removed": True}

        return self._store.run_in_transaction(_op)

    @workflow_operation("register_media_file")
    def register_media_file(
        self,
        *,
        principal: Principal,
        file_name: str,
        file_type: str,
        file_size: int,
        storage_url: str,
    ) -> Outcome:
        if not file_name or not file_name.strip():
            raise WorkflowError(ErrorKind.INVALID, "file name is required")
        if file_size < 0:
            raise WorkflowError(ErrorKind.INVALID, "file size must not be negative")
        return self._store.run_in_transaction(
            lambda: self._store.media_files_repository.insert(
                media_file={
                    "media_file_id": new_id("media"),
                    "uploader_id": principal.user_id,
                    "file_name": file_name.strip(),
                    "file_type": file_type,
                    "file_size": int(file_size),
                    "storage_url": storage_url,
                    "created_at": utcnow(),
                }
            )
        )

    @workflow_operation("upsert_user")
    def upsert_user(self, *, principal: Principal, user_id: str, name: str, email: str) -> Outcome:
        if not principal.is_admin and principal.user_id != user_id:
            raise WorkflowError(ErrorKind.FORBIDDEN, "users may only update their own profile")
        return self._store.run_in_transaction(
            lambda: self._store.users_repository.upsert(user={"user_id": user_id, "name": name, "email": email})
        )
