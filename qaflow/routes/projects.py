from __future__ import annotations

from fastapi import APIRouter, Request

from qaflow.engine import engine
from qaflow.routes._deps import principal_from_request, respond
from qaflow.schemas import MemberAddRequest, ProjectCreateRequest

router = APIRouter(prefix="/api/v1", tags=["projects"])


@router.post("/projects")
def create_project(payload: ProjectCreateRequest, request: Request):
    outcome = engine.projects.create_project(
        principal=principal_from_request(request),
        name=payload.name,
        description=payload.description,
    )
    return respond(request, outcome, status_code=201)


@router.get("/projects/{project_id}")
def get_project(project_id: str, request: Request):
    outcome = engine.projects.get_project(project_id=project_id, principal=principal_from_request(request))
    return respond(request, outcome)


@router.post("/projects/{project_id}/members")
def add_member(project_id: str, payload: MemberAddRequest, request: Request):
    outcome = engine.projects.add_member(
        project_id=project_id,
        principal=principal_from_request(request),
        user_id=payload.user_id,
        role=payload.role,
    )
    return respond(request, outcome, status_code=201)


@router.delete("/projects/{project_id}/members/{user_id}")
def remove_member(project_id: str, user_id: str, request: Request):
    outcome = engine.projects.remove_member(
        project_id=project_id,
        principal=principal_from_request(request),
        user_id=user_id,
    )
    return respond(request, outcome)
