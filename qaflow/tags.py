from __future__ import annotations

import logging
from typing import Any

from qaflow.access import AccessResolver
from qaflow.domain import Principal, new_id, utcnow
from qaflow.outcome import ErrorKind, Outcome, WorkflowError, unwrap, workflow_operation

logger = logging.getLogger(__name__)


def resolve_tag_ids(store: Any, *, project_id: str, tag_ids: list[str]) -> list[str]:
    """Deduplicate ``tag_ids`` keeping order; every id must name a tag of ``project_id``."""
    unique = list(dict.fromkeys(str(x) for x in tag_ids))
    found = {x["tag_id"]: x for x in store.tags_repository.get_many(tag_ids=unique)}
    missing = [x for x in unique if x not in found or found[x].get("project_id") != project_id]
    if missing:
        raise WorkflowError(ErrorKind.BAD_REQUEST, f"tags do not belong to this project: {', '.join(missing)}")
    return unique


class TagService:
    def __init__(self, store: Any, access: AccessResolver) -> None:
        self._store = store
        self._access = access

    @workflow_operation("list_tags")
    def list_tags(self, *, project_id: str, principal: Principal) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        return self._store.tags_repository.list_for_project(project_id=view.project_id)

    @workflow_operation("create_tag")
    def create_tag(self, *, project_id: str, principal: Principal, name: str) -> Outcome:
        view = unwrap(self._access.can_manage_project(project_id=project_id, principal=principal))
        if not name or not name.strip():
            raise WorkflowError(ErrorKind.INVALID, "tag name is required")
        clean = name.strip()

        def _op() -> dict[str, Any]:
            if self._store.tags_repository.get_by_name(project_id=view.project_id, name=clean) is not None:
                raise WorkflowError(ErrorKind.CONFLICT, f'tag "{clean}" already exists')
            return self._store.tags_repository.insert(
                tag={
                    "tag_id": new_id("tag"),
                    "project_id": view.project_id,
                    "name": clean,
                    "created_at": utcnow(),
                }
            )

        tag = self._store.run_in_transaction(_op)
        logger.info("tag_created tag_id=%s project_id=%s", tag["tag_id"], view.project_id)
        return tag

    @workflow_operation("delete_tag")
    def delete_tag(self, *, project_id: str, principal: Principal, tag_id: str, force: bool = False) -> Outcome:
        view = unwrap(self._access.can_manage_project(project_id=project_id, principal=principal))

        def _op() -> dict[str, Any]:
            tag = self._store.tags_repository.get(tag_id=tag_id)
            if tag is None:
                raise WorkflowError(ErrorKind.NOT_FOUND, "tag not found")
            if tag.get("project_id") != view.project_id:
                raise WorkflowError(ErrorKind.BAD_REQUEST, "tag does not belong to this project")
            usage = self._store.tags_repository.count_usage(tag_id=tag_id)
            if usage and not force:
                raise WorkflowError(ErrorKind.CONFLICT, f"tag is used by {usage} question(s)")
            self._store.tags_repository.delete(tag_id=tag_id)
            return {"tag_id": tag_id, "deleted": True, "detached_questions": usage}

        result = self._store.run_in_transaction(_op)
        logger.info("tag_deleted tag_id=%s detached=%s", tag_id, result["detached_questions"])
        return result
