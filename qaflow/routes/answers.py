from __future__ import annotations

from fastapi import APIRouter, Request

from qaflow.engine import engine
from qaflow.routes._deps import principal_from_request, respond
from qaflow.schemas import AnswerCreateRequest, AnswerUpdateRequest

router = APIRouter(prefix="/api/v1/projects/{project_id}/questions/{question_id}/answers", tags=["answers"])


@router.post("")
def create_answer(project_id: str, question_id: str, payload: AnswerCreateRequest, request: Request):
    form_responses = None
    if payload.form_responses is not None:
        form_responses = [r.model_dump() for r in payload.form_responses]
    outcome = engine.answers.create_answer(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
        content=payload.content,
        media_file_ids=payload.media_file_ids,
        form_responses=form_responses,
    )
    return respond(request, outcome, status_code=201)


@router.get("")
def list_answers(project_id: str, question_id: str, request: Request):
    outcome = engine.answers.list_answers(
        project_id=project_id,
        question_id=question_id,
        principal=principal_from_request(request),
    )
    return respond(request, outcome)


@router.get("/{answer_id}")
def get_answer(project_id: str, question_id: str, answer_id: str, request: Request):
    outcome = engine.answers.get_answer(
        project_id=project_id,
        question_id=question_id,
        answer_id=answer_id,
        principal=principal_from_request(request),
    )
    return respond(request, outcome)


@router.patch("/{answer_id}")
def update_answer(project_id: str, question_id: str, answer_id: str, payload: AnswerUpdateRequest, request: Request):
    form_responses = None
    if payload.form_responses is not None:
        form_responses = [r.model_dump() for r in payload.form_responses]
    outcome = engine.answers.update_answer(
        project_id=project_id,
        question_id=question_id,
        answer_id=answer_id,
        principal=principal_from_request(request),
        content=payload.content,
        media_file_ids=payload.media_file_ids,
        form_responses=form_responses,
    )
    return respond(request, outcome)


@router.delete("/{answer_id}")
def delete_answer(project_id: str, question_id: str, answer_id: str, request: Request):
    outcome = engine.answers.delete_answer(
        project_id=project_id,
        question_id=question_id,
        answer_id=answer_id,
        principal=principal_from_request(request),
    )
    return respond(request, outcome)
