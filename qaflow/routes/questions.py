from __future__ import annotations

from fastapi import APIRouter, Query, Request

from qaflow.engine import engine
from qaflow.questions import UNSET
from qaflow.routes._deps import principal_from_request, respond
from qaflow.schemas import (
    AnswerFormPutRequest,
    QuestionCreateRequest,
    QuestionStatusRequest,
    QuestionUpdateRequest,
)

router = APIRouter(prefix="/api/v1/projects/{project_id}/questions", tags=["questions"])


@router.post("")
def create_question(project_id: str, payload: QuestionCreateRequest, request: Request):
    answer_form = None
    if payload.answer_form is not None:
        answer_form = [f.model_dump() for f in payload.answer_form.fields]
    outcome = engine.questions.create_question(
        project_id=project_id,
        principal=principal_from_request(request),
        title=payload.title,
        content=payload.content,
        assignee_id=payload.assignee_id,
        priority=payload.priority,
        deadline=payload.deadline,
        answer_form=answer_form,
        tag_ids=payload.tag_ids,
    )
    return respond(request, outcome, status_code=201)


@router.get("")
def list_questions(
    project_id: str,
    request: Request,
    status: str | None = Query(default=None),
    assignee_id: str | None = Query(default=None),
    creator_id: str | None = Query(default=None),
    priority: str | None = Query(default=None),
    overdue: bool = Query(default=False),
    search: str | None = Query(default=None),
    tag: str | None = Query(default=None),
):
    outcome = engine.questions.list_questions(
        project_id=project_id,
        principal=principal_from_request(request),
        status=status,
        assignee_id=assignee_id,
        creator_id=creator_id,
        priority=priority,
        overdue=overdue,
        search=search,
        tag=tag,
    )
    return respond(request, outcome)


@router.get("/{question_id}")
def get_question(project_id: str, question_id: str, request: Request):
    outcome = engine.questions.get_question(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
    )
    return respond(request, outcome)


@router.patch("/{question_id}")
def update_question(project_id: str, question_id: str, payload: QuestionUpdateRequest, request: Request):
    outcome = engine.questions.update_question(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
        title=payload.title,
        content=payload.content,
        assignee_id=payload.assignee_id,
        priority=payload.priority,
        deadline=payload.deadline if "deadline" in payload.model_fields_set else UNSET,
        tag_ids=payload.tag_ids,
    )
    return respond(request, outcome)


@router.patch("/{question_id}/status")
def set_status(project_id: str, question_id: str, payload: QuestionStatusRequest, request: Request):
    outcome = engine.questions.set_status(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
        target=payload.status,
    )
    return respond(request, outcome)


@router.get("/{question_id}/form")
def get_answer_form(project_id: str, question_id: str, request: Request):
    outcome = engine.questions.get_answer_form(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
    )
    return respond(request, outcome)


@router.put("/{question_id}/form")
def put_answer_form(project_id: str, question_id: str, payload: AnswerFormPutRequest, request: Request):
    outcome = engine.questions.put_answer_form(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
        fields=None if payload.fields is None else [f.model_dump() for f in payload.fields],
        template_id=payload.template_id,
    )
    return respond(request, outcome)


@router.delete("/{question_id}/form")
def delete_answer_form(project_id: str, question_id: str, request: Request):
    outcome = engine.questions.delete_answer_form(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
    )
    return respond(request, outcome)
