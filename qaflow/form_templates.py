from __future__ import annotations

from typing import Any

from qaflow.domain import Principal, new_id, utcnow
from qaflow.outcome import ErrorKind, Outcome, WorkflowError, workflow_operation
from qaflow.questions import normalize_form_fields


def _template_fields(fields: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{k: v for k, v in x.items() if k != "form_field_id"} for x in normalize_form_fields(fields)]


class FormTemplateService:
    """Reusable answer form layouts, private to the user who saved them."""

    def __init__(self, store: Any) -> None:
        self._store = store

    def _owned(self, *, template_id: str, principal: Principal) -> dict[str, Any]:
        template = self._store.form_templates_repository.get(template_id=template_id)
        if template is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "template not found")
        if template.get("creator_id") != principal.user_id:
            raise WorkflowError(ErrorKind.FORBIDDEN, "templates are visible to their creator only")
        return template

    @workflow_operation("create_template")
    def create_template(
        self,
        *,
        principal: Principal,
        name: str,
        fields: list[dict[str, Any]],
        description: str | None = None,
    ) -> Outcome:
        if not name or not name.strip():
            raise WorkflowError(ErrorKind.INVALID, "template name is required")
        now = utcnow()
        template = {
            "template_id": new_id("tpl"),
            "creator_id": principal.user_id,
            "name": name.strip(),
            "description": description,
            "fields": _template_fields(fields),
            "created_at": now,
            "updated_at": now,
        }
        return self._store.run_in_transaction(
            lambda: self._store.form_templates_repository.upsert(template=template)
        )

    @workflow_operation("list_templates")
    def list_templates(self, *, principal: Principal, search: str | None = None) -> Outcome:
        rows = self._store.form_templates_repository.list_for_creator(creator_id=principal.user_id)
        needle = (search or "").strip().lower()
        if not needle:
            return rows
        return [x for x in rows if needle in f"{x.get('name') or ''}\n{x.get('description') or ''}".lower()]

    @workflow_operation("get_template")
    def get_template(self, *, template_id: str, principal: Principal) -> Outcome:
        return self._owned(template_id=template_id, principal=principal)

    @workflow_operation("update_template")
    def update_template(
        self,
        *,
        template_id: str,
        principal: Principal,
        name: str | None = None,
        description: str | None = None,
        fields: list[dict[str, Any]] | None = None,
    ) -> Outcome:
        changes: dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise WorkflowError(ErrorKind.INVALID, "template name is required")
            changes["name"] = name.strip()
        if description is not None:
            changes["description"] = description
        if fields is not None:
            changes["fields"] = _template_fields(fields)

        def _op() -> dict[str, Any]:
            current = self._owned(template_id=template_id, principal=principal)
            return self._store.form_templates_repository.upsert(
                template={**current, **changes, "updated_at": utcnow()}
            )

        return self._store.run_in_transaction(_op)

    @workflow_operation("delete_template")
    def delete_template(self, *, template_id: str, principal: Principal) -> Outcome:
        def _op() -> dict[str, Any]:
            self._owned(template_id=template_id, principal=principal)
            self._store.form_templates_repository.delete(template_id=template_id)
            return {"template_id": template_id, "deleted": True}

        return self._store.run_in_transaction(_op)
