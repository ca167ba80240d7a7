from __future__ import annotations

from fastapi import APIRouter, Query, Request

from qaflow.engine import engine
from qaflow.routes._deps import principal_from_request, respond
from qaflow.schemas import FormTemplateCreateRequest, FormTemplateUpdateRequest

router = APIRouter(prefix="/api/v1/answer-form-templates", tags=["answer-form-templates"])


@router.get("")
def list_templates(request: Request, search: str | None = Query(default=None)):
    outcome = engine.form_templates.list_templates(principal=principal_from_request(request), search=search)
    return respond(request, outcome)


@router.post("")
def create_template(payload: FormTemplateCreateRequest, request: Request):
    outcome = engine.form_templates.create_template(
        principal=principal_from_request(request),
        name=payload.name,
        description=payload.description,
        fields=[f.model_dump() for f in payload.fields],
    )
    return respond(request, outcome, status_code=201)


@router.get("/{template_id}")
def get_template(template_id: str, request: Request):
    outcome = engine.form_templates.get_template(template_id=template_id, principal=principal_from_request(request))
    return respond(request, outcome)


@router.patch("/{template_id}")
def update_template(template_id: str, payload: FormTemplateUpdateRequest, request: Request):
    outcome = engine.form_templates.update_template(
        template_id=template_id,
        principal=principal_from_request(request),
        name=payload.name,
        description=payload.description,
        fields=None if payload.fields is None else [f.model_dump() for f in payload.fields],
    )
    return respond(request, outcome)


@router.delete("/{template_id}")
def delete_template(template_id: str, request: Request):
    outcome = engine.form_templates.delete_template(
        template_id=template_id,
        principal=principal_from_request(request),
    )
    return respond(request, outcome)
