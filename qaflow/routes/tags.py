from __future__ import annotations

from fastapi import APIRouter, Query, Request

from qaflow.engine import engine
from qaflow.routes._deps import principal_from_request, respond
from qaflow.schemas import TagCreateRequest

router = APIRouter(prefix="/api/v1/projects/{project_id}/tags", tags=["tags"])


@router.get("")
def list_tags(project_id: str, request: Request):
    outcome = engine.tags.list_tags(project_id=project_id, principal=principal_from_request(request))
    return respond(request, outcome)


@router.post("")
def create_tag(project_id: str, payload: TagCreateRequest, request: Request):
    outcome = engine.tags.create_tag(
        project_id=project_id,
        principal=principal_from_request(request),
        name=payload.name,
    )
    return respond(request, outcome, status_code=201)


@router.delete("/{tag_id}")
def delete_tag(project_id: str, tag_id: str, request: Request, force: bool = Query(default=False)):
    outcome = engine.tags.delete_tag(
        project_id=project_id,
        principal=principal_from_request(request),
        tag_id=tag_id,
        force=force,
    )
    return respond(request, outcome)
