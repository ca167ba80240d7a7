from __future__ import annotations

from fastapi import APIRouter, Request

from qaflow.engine import engine
from qaflow.errors import ApiError
from qaflow.routes._deps import principal_from_request, respond
from qaflow.schemas import MediaFileRegisterRequest, UserProfileRequest

router = APIRouter(prefix="/api/v1", tags=["users"])


@router.put("/users/me")
def sync_profile(payload: UserProfileRequest, request: Request):
    principal = principal_from_request(request)
    if principal is None:
        raise ApiError(
            code="AUTH_UNAUTHORIZED",
            message="authentication required",
            error_class="security_sensitive",
            retryable=False,
            http_status=401,
        )
    outcome = engine.projects.upsert_user(
        principal=principal,
        user_id=principal.user_id,
        name=payload.name,
        email=payload.email,
    )
    return respond(request, outcome)


@router.post("/media")
def register_media_file(payload: MediaFileRegisterRequest, request: Request):
    outcome = engine.projects.register_media_file(
        principal=principal_from_request(request),
        file_name=payload.file_name,
        file_type=payload.file_type,
        file_size=payload.file_size,
        storage_url=payload.storage_url,
    )
    return respond(request, outcome, status_code=201)
