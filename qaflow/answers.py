from __future__ import annotations

import logging
from typing import Any

from qaflow.access import AccessResolver
from qaflow.domain import FieldType, NotificationType, Principal, ProjectView, QuestionStatus, new_id, utcnow
from qaflow.notifications import NotificationDispatcher, render_message
from qaflow.outcome import ErrorKind, Outcome, WorkflowError, unwrap, workflow_operation

logger = logging.getLogger(__name__)


def _dedupe(ids: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


def _is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def _form_fingerprint(form: dict[str, Any] | None) -> tuple[str, ...] | None:
    if form is None:
        return None
    return tuple(str(f["form_field_id"]) for f in form.get("fields", []))


def validate_answer_payload(
    *,
    form: dict[str, Any] | None,
    content: str,
    form_responses: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Check content and form responses against the question's answer form.

    Returns the responses normalised to ``form_field_id``/``value``/``media_file_id``.
    """
    if form is None:
        if form_responses:
            raise WorkflowError(ErrorKind.BAD_REQUEST, "question has no answer form")
        if _is_blank(content):
            raise WorkflowError(ErrorKind.INVALID, "answer content is required")
        return []

    fields = {str(f["form_field_id"]): f for f in form.get("fields", [])}
    by_field: dict[str, dict[str, Any]] = {}
    normalized: list[dict[str, Any]] = []
    for response in form_responses:
        field_id = str(response.get("form_field_id") or "")
        if field_id not in fields:
            raise WorkflowError(ErrorKind.BAD_REQUEST, f"form field does not exist: {field_id}")
        if field_id in by_field:
            raise WorkflowError(ErrorKind.BAD_REQUEST, f"duplicate response for form field: {field_id}")
        item = {
            "form_field_id": field_id,
            "value": response.get("value"),
            "media_file_id": response.get("media_file_id"),
        }
        by_field[field_id] = item
        normalized.append(item)

    for field_id, field in fields.items():
        response = by_field.get(field_id)
        label = field.get("label", field_id)
        field_type = field.get("field_type")
        if field.get("is_required"):
            if response is None:
                raise WorkflowError(ErrorKind.INVALID, f'required field "{label}" is missing')
            if field_type == FieldType.FILE and _is_blank(response.get("media_file_id")):
                raise WorkflowError(ErrorKind.INVALID, f'required field "{label}" needs an attached file')
            if field_type != FieldType.FILE and _is_blank(response.get("value")):
                raise WorkflowError(ErrorKind.INVALID, f'required field "{label}" needs a value')
        if response is None or _is_blank(response.get("value")):
            continue
        if field_type == FieldType.RADIO and str(response["value"]) not in {str(x) for x in field.get("options", [])}:
            raise WorkflowError(ErrorKind.INVALID, f'value for "{label}" is not one of the field options')
        if field_type == FieldType.NUMBER:
            try:
                float(str(response["value"]))
            except ValueError:
                raise WorkflowError(ErrorKind.INVALID, f'value for "{label}" must be a number') from None
    return normalized


class AnswerService:
    """Atomic create/update/delete of an answer with its media links and form responses."""

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

    def _load_answer(self, *, question: dict[str, Any], answer_id: str) -> dict[str, Any]:
        answer = self._store.answers_repository.get(answer_id=answer_id)
        if answer is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "answer not found")
        if answer.get("question_id") != question["question_id"]:
            raise WorkflowError(ErrorKind.BAD_REQUEST, "answer does not belong to this question")
        return answer

    def _lock_open_question(self, question_id: str) -> dict[str, Any]:
        current = self._store.questions_repository.get(question_id=question_id, for_update=True)
        if current is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, "question not found")
        if current.get("status") == QuestionStatus.CLOSED:
            raise WorkflowError(ErrorKind.INVALID, "question is closed")
        return current

    def _require_owned_media(
        self,
        *,
        principal: Principal,
        media_file_ids: list[str],
        already_attached: set[str] | None = None,
    ) -> None:
        candidates = [x for x in media_file_ids if x not in (already_attached or set())]
        if not candidates:
            return
        owned = self._store.media_files_repository.owned_ids(
            media_file_ids=candidates,
            uploader_id=principal.user_id,
        )
        missing = [x for x in candidates if x not in owned]
        if missing:
            raise WorkflowError(
                ErrorKind.BAD_REQUEST,
                f"media files not found or not owned by caller: {', '.join(missing)}",
            )

    def _write_attachments(
        self,
        *,
        answer_id: str,
        media_file_ids: list[str] | None,
        responses: list[dict[str, Any]] | None,
    ) -> None:
        repo = self._store.answers_repository
        if media_file_ids is not None:
            repo.delete_media_links(answer_id=answer_id)
            if media_file_ids:
                repo.add_media_links(answer_id=answer_id, media_file_ids=media_file_ids)
        if responses is not None:
            repo.delete_form_responses(answer_id=answer_id)
            if responses:
                repo.add_form_responses(
                    answer_id=answer_id,
                    responses=[{**r, "form_response_id": new_id("fresp")} for r in responses],
                )

    def hydrate(self, answer: dict[str, Any]) -> dict[str, Any]:
        repo = self._store.answers_repository
        answer_id = str(answer["answer_id"])
        media_ids = repo.list_media_links(answer_id=answer_id)
        responses = repo.list_form_responses(answer_id=answer_id)
        creator = self._store.users_repository.get_many(user_ids=[answer["creator_id"]]).get(answer["creator_id"])
        return {
            **answer,
            "creator": creator,
            "media_files": self._store.media_files_repository.get_many(media_file_ids=media_ids),
            "form_responses": responses,
        }

    @workflow_operation("create_answer")
    def create_answer(
        self,
        *,
        project_id: str,
        question_id: str,
        principal: Principal,
        content: str = "",
        media_file_ids: list[str] | None = None,
        form_responses: list[dict[str, Any]] | None = None,
    ) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        question = self._load_question(view=view, question_id=question_id)
        if question.get("status") == QuestionStatus.CLOSED:
            raise WorkflowError(ErrorKind.INVALID, "cannot answer a closed question")
        if principal.user_id != question.get("assignee_id"):
            raise WorkflowError(ErrorKind.FORBIDDEN, "only the assignee may answer this question")

        form = self._store.questions_repository.get_form(question_id=question_id)
        responses = validate_answer_payload(form=form, content=content, form_responses=form_responses or [])
        media_ids = _dedupe(list(media_file_ids or []))
        response_media = [str(r["media_file_id"]) for r in responses if r.get("media_file_id")]
        # Checked outside the lock: media rows are never deleted, so ownership cannot change.
        self._require_owned_media(principal=principal, media_file_ids=_dedupe(media_ids + response_media))

        def _op() -> dict[str, Any]:
            current = self._lock_open_question(question_id)
            if _form_fingerprint(self._store.questions_repository.get_form(question_id=question_id)) != (
                _form_fingerprint(form)
            ):
                raise WorkflowError(ErrorKind.INVALID, "answer form changed; reload and retry")
            now = utcnow()
            answer = self._store.answers_repository.insert(
                answer={
                    "answer_id": new_id("ans"),
                    "question_id": question_id,
                    "creator_id": principal.user_id,
                    "content": content or "",
                    "created_at": now,
                    "updated_at": now,
                }
            )
            self._write_attachments(
                answer_id=str(answer["answer_id"]),
                media_file_ids=media_ids,
                responses=responses,
            )
            if current["status"] == QuestionStatus.NEW:
                self._store.questions_repository.update(
                    question={**current, "status": str(QuestionStatus.IN_PROGRESS), "updated_at": now}
                )
            self._dispatcher.notify(
                user_id=str(current["creator_id"]),
                type_=NotificationType.NEW_ANSWER_POSTED,
                related_id=question_id,
                message=render_message(NotificationType.NEW_ANSWER_POSTED, title=current.get("title", "")),
            )
            return answer

        answer = self._store.run_in_transaction(_op)
        logger.info("answer_created answer_id=%s question_id=%s", answer["answer_id"], question_id)
        return self.hydrate(answer)

    @workflow_operation("update_answer")
    def update_answer(
        self,
        *,
        project_id: str,
        question_id: str,
        answer_id: str,
        principal: Principal,
        content: str | None = None,
        media_file_ids: list[str] | None = None,
        form_responses: list[dict[str, Any]] | None = None,
    ) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        question = self._load_question(view=view, question_id=question_id)
        answer = self._load_answer(question=question, answer_id=answer_id)
        if answer.get("creator_id") != principal.user_id and not view.is_manager(principal):
            raise WorkflowError(ErrorKind.FORBIDDEN, "only the answer creator or a project manager may edit it")
        if question.get("status") == QuestionStatus.CLOSED:
            raise WorkflowError(ErrorKind.INVALID, "cannot edit an answer on a closed question")

        repo = self._store.answers_repository
        form = self._store.questions_repository.get_form(question_id=question_id)
        new_content = (answer.get("content") or "") if content is None else content
        existing_responses = repo.list_form_responses(answer_id=answer_id)
        effective = form_responses if form_responses is not None else existing_responses
        responses = validate_answer_payload(form=form, content=new_content, form_responses=effective)

        existing_media = set(repo.list_media_links(answer_id=answer_id))
        existing_media.update(str(r["media_file_id"]) for r in existing_responses if r.get("media_file_id"))
        media_ids = None if media_file_ids is None else _dedupe(list(media_file_ids))
        requested = list(media_ids or [])
        if form_responses is not None:
            requested += [str(r["media_file_id"]) for r in responses if r.get("media_file_id")]
        self._require_owned_media(
            principal=principal,
            media_file_ids=_dedupe(requested),
            already_attached=existing_media,
        )

        def _op() -> dict[str, Any]:
            self._lock_open_question(question_id)
            updated = repo.update(answer={**answer, "content": new_content, "updated_at": utcnow()})
            self._write_attachments(
                answer_id=answer_id,
                media_file_ids=media_ids,
                responses=responses if form_responses is not None else None,
            )
            return updated

        updated = self._store.run_in_transaction(_op)
        logger.info("answer_updated answer_id=%s question_id=%s", answer_id, question_id)
        return self.hydrate(updated)

    @workflow_operation("delete_answer")
    def delete_answer(
        self,
        *,
        project_id: str,
        question_id: str,
        answer_id: str,
        principal: Principal,
    ) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        question = self._load_question(view=view, question_id=question_id)
        if question.get("status") == QuestionStatus.CLOSED:
            raise WorkflowError(ErrorKind.INVALID, "cannot delete an answer on a closed question")
        answer = self._load_answer(question=question, answer_id=answer_id)
        if answer.get("creator_id") != principal.user_id and not view.is_manager(principal):
            raise WorkflowError(ErrorKind.FORBIDDEN, "only the answer creator or a project manager may delete it")

        def _op() -> dict[str, Any]:
            current = self._lock_open_question(question_id)
            repo = self._store.answers_repository
            repo.delete_form_responses(answer_id=answer_id)
            repo.delete_media_links(answer_id=answer_id)
            if not repo.delete(answer_id=answer_id):
                raise WorkflowError(ErrorKind.NOT_FOUND, "answer not found")
            remaining = repo.count_for_question(question_id=question_id)
            status = current["status"]
            # Last answer removed: the only backward transition.
            if remaining == 0 and status == QuestionStatus.IN_PROGRESS:
                status = str(QuestionStatus.NEW)
                self._store.questions_repository.update(
                    question={**current, "status": status, "updated_at": utcnow()}
                )
            return {"answer_id": answer_id, "remaining_answers": remaining, "question_status": status}

        result = self._store.run_in_transaction(_op)
        logger.info(
            "answer_deleted answer_id=%s question_id=%s remaining=%s",
            answer_id,
            question_id,
            result["remaining_answers"],
        )
        return result

    @workflow_operation("get_answer")
    def get_answer(self, *, project_id: str, question_id: str, answer_id: str, principal: Principal) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        question = self._load_question(view=view, question_id=question_id)
        return self.hydrate(self._load_answer(question=question, answer_id=answer_id))

    @workflow_operation("list_answers")
    def list_answers(self, *, project_id: str, question_id: str, principal: Principal) -> Outcome:
        view = unwrap(self._access.can_access_project(project_id=project_id, principal=principal))
        self._load_question(view=view, question_id=question_id)
        rows = self._store.answers_repository.list_for_question(question_id=question_id)
        return [self.hydrate(x) for x in rows]
