from __future__ import annotations

from typing import Any

from qaflow.domain import Principal, ProjectView
from qaflow.outcome import ErrorKind, Outcome, WorkflowError, unwrap, workflow_operation


class AccessResolver:
    """Decides whether a principal may read or manage a project.

    Both checks are pure reads. Every engine operation calls one of them
    before touching project data and passes its ``Err`` through unchanged.
    """

    def __init__(self, store: Any) -> None:
        self._store = store

    @workflow_operation("can_access_project")
    def can_access_project(self, *, project_id: str, principal: Principal) -> Outcome:
        project = self._store.projects_repository.get_with_members(project_id=project_id)
        if project is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "project not found")
        membership = next(
            (m for m in project.get("members", []) if m.get("user_id") == principal.user_id),
            None,
        )
        if principal.is_admin or principal.user_id == project.get("creator_id") or membership is not None:
            return ProjectView(project=project, membership=membership)
        raise WorkflowError(ErrorKind.FORBIDDEN, "no access to project")

    @workflow_operation("can_manage_project")
    def can_manage_project(self, *, project_id: str, principal: Principal) -> Outcome:
        view = unwrap(self.can_access_project(project_id=project_id, principal=principal))
        if not view.is_manager(principal):
            raise WorkflowError(ErrorKind.FORBIDDEN, "project manager permission required")
        return view
