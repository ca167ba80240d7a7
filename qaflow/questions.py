from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from qaflow.access import AccessResolver
from qaflow.domain import (
    PRIORITY_RANK,
    FieldType,
    NotificationType,
    Principal,
    ProjectView,
    QuestionPriority,
    QuestionStatus,
    as_utc,
    new_id,
    utcnow,
)
from qaflow.notifications import MESSAGE_TEMPLATES, NotificationDispatcher, render_message
from qaflow.outcome import ErrorKind, Outcome, WorkflowError, unwrap, workflow_operation
from qaflow.tags import resolve_tag_ids

logger = logging.getLogger(__name__)

UNSET: Any = object()

# target status -> (notification type, recipient column, message template)
_STATUS_NOTIFICATIONS: dict[QuestionStatus, tuple[NotificationType, str, str]] = {
    QuestionStatus.PENDING_APPROVAL: (
        NotificationType.NEW_ANSWER_POSTED,
        "creator_id",
        'The question "{title}" has an answer awaiting your approval',
    ),
    QuestionStatus.CLOSED: (
        NotificationType.ANSWERED_QUESTION_CLOSED,
        "assignee_id",
        MESSAGE_TEMPLATES[NotificationType.ANSWERED_QUESTION_CLOSED],
    ),
}

_ANSWER_REQUIRED = {QuestionStatus.PENDING_APPROVAL, QuestionStatus.CLOSED}


def _parse_priority(value: str | None) -> str:
    if value is None:
        return str(QuestionPriority.MEDIUM)
    try:
        return str(QuestionPriority(str(value).upper()))
    except ValueError:
        raise WorkflowError(ErrorKind.INVALID, f"unknown priority: {value}") from None


def _require_text(value: str | None, name: str) -> str:
    if value is None or not value.strip():
        raise WorkflowError(ErrorKind.INVALID, f"{name} is required")
    return value


def normalize_form_fields(fields: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not fields:
        raise WorkflowError(ErrorKind.INVALID, "answer form needs at least one field")
    out: list[dict[str, Any]] = []
    for index, field in enumerate(fields):
        label = _require_text(field.get("label"), "field label")
        try:
            field_type = FieldType(str(field.get("field_type", "")).upper())
        except ValueError:
            raise WorkflowError(ErrorKind.INVALID, f"unknown field type: {field.get('field_type')}") from None
        options = [str(x) for x in field.get("options") or [] if str(x).strip()]
        if field_type == FieldType.RADIO and not options:
            raise WorkflowError(ErrorKind.INVALID, f'radio field "{label}" needs at least one option')
        sort_order = field.get("sort_order")
        out.append(
            {
                "form_field_id": new_id("fld"),
                "label": label,
                "field_type": str(field_type),
                "options": options if field_type == FieldType.RADIO else [],
                "is_required": bool(field.get("is_required", False)),
                "sort_order": index if sort_order is None else int(sort_order),
            }
        )
    return out


def check_transition(
    *,
    question: dict[str, Any],
    target: str,
    answer_count: int,
    view: ProjectView,
    principal: Principal,
) -> QuestionStatus:
    """Validate a status change; raises ``WorkflowError`` or returns the parsed target."""
    if target == QuestionStatus.NEW:
        raise WorkflowError(ErrorKind.INVALID, "status cannot be changed to NEW")
    if question.get("status") == QuestionStatus.CLOSED:
        raise WorkflowError(ErrorKind.INVALID, "question is closed")
    try:
        parsed = QuestionStatus(target)
    except ValueError:
        raise WorkflowError(ErrorKind.INVALID, f"unknown status: {target}") from None
    if parsed in _ANSWER_REQUIRED and answer_count < 1:
        raise WorkflowError(ErrorKind.INVALID, f"{parsed} requires at least one answer")
    if view.is_manager(principal):
        return parsed
    if parsed == QuestionStatus.CLOSED:
        if principal.user_id != question.get("creator_id"):
            raise WorkflowError(ErrorKind.FORBIDDEN, "only the question creator may close it")
    elif principal.user_id != question.get("assignee_id"):
        raise WorkflowError(ErrorKind.FORBIDDEN, f"only the assignee may move the question to {parsed}")
    return parsed


class QuestionService:
    def __init__(self, store: Any, access: AccessResolver, dispatcher: NotificationDispatcher) -> None:
        self._store = store
        self._access = access
        self._dispatcher = dispatcher

    def _load_question(self, *, view: ProjectView, question_id: str) -> dict[str, Any]:
        question = self._store.questions_repository.get(question_id=question_id)
        if question is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "question not found")
        if question.get("project_id") != view.project_id:
            raise WorkflowError(ErrorKind.BAD_REQUEST, "question does not belong to this project")
        return question

    def _lock_question(self, question_id: str) -> dict[str, Any]:
        current = self._store.questions_repository.get(question_id=question_id, for_update=True)
        if current is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "question not found")
        return current

    def _require_assignee_member(self, *, project_id: str, assignee_id: str) -> None:
        member = self._store.projects_repository.get_member(project_id=project_id, user_id=assignee_id)
        if member is None:
            raise WorkflowError(ErrorKind.INVALID, "assignee is not a member of this project")

    def _hydrate(self, question: dict[str, Any], *, with_form: bool = False) -> dict[str, Any]:
        user_ids = [question["creator_id"], question["assignee_id"]]
        users = self._store.users_repository.get_many(user_ids=user_ids)
        item = {
            **question,
            "creator": users.get(question["creator_id"]),
            "assignee": users.get(question["assignee_id"]),
            "answer_count": self._store.answers_repository.count_for_question(question_id=question["question_id"]),
            "tags": self._store.tags_repository.list_for_question(question_id=question["question_id"]),
        }
        if with_form:
            item["answer_form"] = self._store.questions_repository.get_form(question_id=question["question_id"])
        return item

    def _can_edit(self, *, view: ProjectView, question: dict[str, Any], principal: Principal) -> bool:
        return view.is_manager(principal) or question.get("creator_id") == principal.user_id

    @workflow_operation("create_question")
    def create_question(
        self,
        *,
        project_id: str,
        principal: Principal,
        title: str,
        content: str,
        assignee_id: str,
        priority: str | None = None,
        deadline: datetime | None = None,
        answer_form: list[dict[str, Any]] | None = None,
        tag_ids: list[str] | None = None,
    ) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        _require_text(title, "title")
        _require_text(content, "content")
        parsed_priority = _parse_priority(priority)
        self._require_assignee_member(project_id=view.project_id, assignee_id=assignee_id)
        fields = normalize_form_fields(answer_form) if answer_form is not None else None

        def _op() -> dict[str, Any]:
            now = utcnow()
            question = self._store.questions_repository.insert(
                question={
                    "question_id": new_id("q"),
                    "project_id": view.project_id,
                    "creator_id": principal.user_id,
                    "assignee_id": assignee_id,
                    "title": title,
                    "content": content,
                    "status": str(QuestionStatus.NEW),
                    "priority": parsed_priority,
                    "deadline": as_utc(deadline),
                    "is_deadline_notified": False,
                    "created_at": now,
                    "updated_at": now,
                }
            )
            if fields is not None:
                self._store.questions_repository.save_form(
                    form={
                        "answer_form_id": new_id("form"),
                        "question_id": question["question_id"],
                        "created_at": now,
                        "updated_at": now,
                    },
                    fields=fields,
                )
            if tag_ids:
                self._store.tags_repository.replace_for_question(
                    question_id=question["question_id"],
                    tag_ids=resolve_tag_ids(self._store, project_id=view.project_id, tag_ids=tag_ids),
                )
            self._dispatcher.notify(
                user_id=assignee_id,
                type_=NotificationType.NEW_QUESTION_ASSIGNED,
                related_id=str(question["question_id"]),
                message=render_message(NotificationType.NEW_QUESTION_ASSIGNED, title=title),
            )
            return question

        question = self._store.run_in_transaction(_op)
        logger.info("question_created question_id=%s project_id=%s", question["question_id"], project_id)
        return self._hydrate(question, with_form=True)

    @workflow_operation("get_question")
    def get_question(self, *, project_id: str, question_id: str, principal: Principal) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        question = self._load_question(view=view, question_id=question_id)
        if not view.is_manager(principal) and principal.user_id not in {
            question.get("creator_id"),
            question.get("assignee_id"),
        }:
            raise WorkflowError(ErrorKind.FORBIDDEN, "question is visible to its creator and assignee only")
        return self._hydrate(question, with_form=True)

    @workflow_operation("list_questions")
    def list_questions(
        self,
        *,
        project_id: str,
        principal: Principal,
        status: str | None = None,
        assignee_id: str | None = None,
        creator_id: str | None = None,
        priority: str | None = None,
        overdue: bool = False,
        search: str | None = None,
        tag: str | None = None,
    ) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        rows = self._store.questions_repository.list_for_project(project_id=view.project_id)
        now = utcnow()
        needle = (search or "").strip().lower()

        def _matches(row: dict[str, Any]) -> bool:
            if status and row.get("status") != status:
                return False
            if assignee_id and row.get("assignee_id") != assignee_id:
                return False
            if creator_id and row.get("creator_id") != creator_id:
                return False
            if priority and row.get("priority") != str(priority).upper():
                return False
            if overdue:
                deadline = row.get("deadline")
                if deadline is None or deadline >= now or row.get("status") == QuestionStatus.CLOSED:
                    return False
            if not view.is_manager(principal) and principal.user_id not in {
                row.get("creator_id"),
                row.get("assignee_id"),
            }:
                return False
            if tag and not any(
                tag in (t["tag_id"], t["name"])
                for t in self._store.tags_repository.list_for_question(question_id=row["question_id"])
            ):
                return False
            if needle:
                haystack = f"{row.get('title', '')}\n{row.get('content', '')}".lower()
                if needle not in haystack:
                    answers = self._store.answers_repository.list_for_question(question_id=row["question_id"])
                    if not any(needle in str(a.get("content", "")).lower() for a in answers):
                        return False
            return True

        selected = [x for x in rows if _matches(x)]
        selected.sort(key=lambda x: x["updated_at"], reverse=True)
        selected.sort(key=lambda x: PRIORITY_RANK.get(x.get("priority", ""), 0), reverse=True)
        return [self._hydrate(x) for x in selected]

    @workflow_operation("update_question")
    def update_question(
        self,
        *,
        project_id: str,
        question_id: str,
        principal: Principal,
        title: str | None = None,
        content: str | None = None,
        assignee_id: str | None = None,
        priority: str | None = None,
        deadline: Any = UNSET,
        tag_ids: list[str] | None = None,
    ) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        question = self._load_question(view=view, question_id=question_id)
        if not self._can_edit(view=view, question=question, principal=principal):
            raise WorkflowError(ErrorKind.FORBIDDEN, "only the question creator or a project manager may edit it")
        if question.get("status") == QuestionStatus.CLOSED:
            raise WorkflowError(ErrorKind.INVALID, "question is closed")
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = _require_text(title, "title")
        if content is not None:
            changes["content"] = _require_text(content, "content")
        if priority is not None:
            changes["priority"] = _parse_priority(priority)
        if deadline is not UNSET:
            changes["deadline"] = as_utc(deadline)
        reassigned = assignee_id is not None and assignee_id != question.get("assignee_id")
        if reassigned:
            self._require_assignee_member(project_id=view.project_id, assignee_id=str(assignee_id))
            changes["assignee_id"] = assignee_id

        def _op() -> dict[str, Any]:
            current = self._lock_question(question_id)
            if current.get("status") == QuestionStatus.CLOSED:
                raise WorkflowError(ErrorKind.INVALID, "question is closed")
            row = {**current, **changes, "updated_at": utcnow()}
            # Only a different deadline gets its own overdue notification.
            if "deadline" in changes and changes["deadline"] != current.get("deadline"):
                row["is_deadline_notified"] = False
            updated = self._store.questions_repository.update(question=row)
            if tag_ids is not None:
                self._store.tags_repository.replace_for_question(
                    question_id=question_id,
                    tag_ids=resolve_tag_ids(self._store, project_id=view.project_id, tag_ids=tag_ids),
                )
            if reassigned:
                self._dispatcher.notify(
                    user_id=str(assignee_id),
                    type_=NotificationType.NEW_QUESTION_ASSIGNED,
                    related_id=question_id,
                    message=render_message(NotificationType.NEW_QUESTION_ASSIGNED, title=updated["title"]),
                )
            return updated

        updated = self._store.run_in_transaction(_op)
        return self._hydrate(updated, with_form=True)

    @workflow_operation("set_status")
    def set_status(self, *, project_id: str, question_id: str, principal: Principal, target: str) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        self._load_question(view=view, question_id=question_id)

        def _op() -> dict[str, Any]:
            current = self._lock_question(question_id)
            answer_count = self._store.answers_repository.count_for_question(question_id=question_id)
            parsed = check_transition(
                question=current,
                target=target,
                answer_count=answer_count,
                view=view,
                principal=principal,
            )
            if current.get("status") == parsed:
                return current
            updated = self._store.questions_repository.update(
                question={**current, "status": str(parsed), "updated_at": utcnow()}
            )
            notification = _STATUS_NOTIFICATIONS.get(parsed)
            if notification is not None:
                type_, recipient_key, template = notification
                self._dispatcher.notify(
                    user_id=str(updated[recipient_key]),
                    type_=type_,
                    related_id=question_id,
                    message=template.format(title=updated.get("title", "")),
                )
            logger.info(
                "question_status_changed question_id=%s from=%s to=%s",
                question_id,
                current.get("status"),
                parsed,
            )
            return updated

        updated = self._store.run_in_transaction(_op)
        return self._hydrate(updated)

    @workflow_operation("get_answer_form")
    def get_answer_form(self, *, project_id: str, question_id: str, principal: Principal) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        self._load_question(view=view, question_id=question_id)
        form = self._store.questions_repository.get_form(question_id=question_id)
        if form is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "answer form not found")
        return form

    def _check_form_editable(self, *, view: ProjectView, question_id: str, principal: Principal) -> None:
        question = self._load_question(view=view, question_id=question_id)
        if not self._can_edit(view=view, question=question, principal=principal):
            raise WorkflowError(ErrorKind.FORBIDDEN, "only the question creator or a project manager may edit the form")
        if question.get("status") == QuestionStatus.CLOSED:
            raise WorkflowError(ErrorKind.INVALID, "question is closed")

    def _require_no_answers(self, question_id: str) -> None:
        if self._store.answers_repository.count_for_question(question_id=question_id) > 0:
            raise WorkflowError(ErrorKind.INVALID, "answer form cannot change once the question has answers")

    @workflow_operation("put_answer_form")
    def put_answer_form(
        self,
        *,
        project_id: str,
        question_id: str,
        principal: Principal,
        fields: list[dict[str, Any]] | None = None,
        template_id: str | None = None,
    ) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        self._check_form_editable(view=view, question_id=question_id, principal=principal)
        self._require_no_answers(question_id)
        if (fields is None) == (template_id is None):
            raise WorkflowError(ErrorKind.INVALID, "provide either fields or template_id")
        if template_id is not None:
            template = self._store.form_templates_repository.get(template_id=template_id)
            if template is None or template.get("creator_id") != principal.user_id:
                raise WorkflowError(ErrorKind.NOT_FOUND, "template not found")
            fields = template["fields"]
        normalized = normalize_form_fields(fields or [])

        def _op() -> dict[str, Any]:
            current = self._lock_question(question_id)
            if current.get("status") == QuestionStatus.CLOSED:
                raise WorkflowError(ErrorKind.INVALID, "question is closed")
            self._require_no_answers(question_id)
            now = utcnow()
            return self._store.questions_repository.save_form(
                form={
                    "answer_form_id": new_id("form"),
                    "question_id": question_id,
                    "created_at": now,
                    "updated_at": now,
                },
                fields=normalized,
            )

        return self._store.run_in_transaction(_op)

    @workflow_operation("delete_answer_form")
    def delete_answer_form(self, *, project_id: str, question_id: str, principal: Principal) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        self._check_form_editable(view=view, question_id=question_id, principal=principal)
        self._require_no_answers(question_id)

        def _op() -> dict[str, Any]:
            current = self._lock_question(question_id)
            if current.get("status") == QuestionStatus.CLOSED:
                raise WorkflowError(ErrorKind.INVALID, "question is closed")
            self._require_no_answers(question_id)
            if not self._store.questions_repository.delete_form(question_id=question_id):
                raise WorkflowError(ErrorKind.NOT_FOUND, "answer form not found")
            return {"question_id": question_id, "deleted": True}

        return self._store.run_in_transaction(_op)
