from __future__ import annotations

from fastapi import APIRouter, Query, Request

from qaflow.engine import engine
from qaflow.notifications import DEFAULT_PAGE_LIMIT
from qaflow.routes._deps import principal_from_request, respond
from qaflow.schemas import NotificationUpdateRequest

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    request: Request,
    unread_only: bool = Query(default=False),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1),
    cursor: str | None = Query(default=None),
):
    outcome = engine.inbox.list_notifications(
        principal=principal_from_request(request),
        unread_only=unread_only,
        limit=limit,
        cursor=cursor,
    )
    return respond(request, outcome)


@router.post("/read-all")
def mark_all_read(request: Request):
    outcome = engine.inbox.mark_all_read(principal=principal_from_request(request))
    return respond(request, outcome)


@router.patch("/{notification_id}")
def update_notification(notification_id: str, payload: NotificationUpdateRequest, request: Request):
    outcome = engine.inbox.mark_read(
        notification_id=notification_id,
        principal=principal_from_request(request),
        is_read=payload.is_read,
    )
    return respond(request, outcome)
