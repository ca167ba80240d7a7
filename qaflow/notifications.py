from __future__ import annotations

import logging
import os
from typing import Any

from qaflow.domain import NotificationType, Principal, new_id, utcnow
from qaflow.outcome import ErrorKind, Outcome, WorkflowError, workflow_operation

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 50

MESSAGE_TEMPLATES: dict[NotificationType, str] = {
    NotificationType.NEW_QUESTION_ASSIGNED: 'New question "{title}" has been assigned to you',
    NotificationType.NEW_ANSWER_POSTED: 'A new answer was posted to your question "{title}"',
    NotificationType.ANSWERED_QUESTION_CLOSED: 'The question "{title}" you answered has been closed',
    NotificationType.ASSIGNEE_DEADLINE_EXCEEDED: 'The answer deadline for "{title}" has passed (project: {project})',
    NotificationType.REQUESTER_DEADLINE_EXCEEDED: 'The deadline for your question "{title}" has passed (project: {project})',
}


def render_message(type_: NotificationType, **context: Any) -> str:
    return MESSAGE_TEMPLATES[type_].format(**context)


def _page_limit_max() -> int:
    raw = os.environ.get("NOTIFICATION_PAGE_LIMIT_MAX", "").strip()
    if raw.isdigit() and int(raw) > 0:
        return int(raw)
    return 100


class NotificationDispatcher:
    """Writes one notification row per triggering event.

    ``notify`` is always called from inside the caller's transaction so the
    row commits or rolls back together with the mutation that caused it.
    """

    def __init__(self, store: Any) -> None:
        self._store = store

    def notify(
        self,
        *,
        user_id: str,
        type_: NotificationType,
        related_id: str,
        message: str,
    ) -> dict[str, Any]:
        row = self._store.notifications_repository.insert(
            notification={
                "notification_id": new_id("ntf"),
                "user_id": user_id,
                "type": str(type_),
                "related_id": related_id,
                "message": message,
                "is_read": False,
                "created_at": utcnow(),
            }
        )
        logger.info("notification_dispatched type=%s user_id=%s related_id=%s", type_, user_id, related_id)
        return row


class NotificationInbox:
    def __init__(self, store: Any) -> None:
        self._store = store

    @workflow_operation("list_notifications")
    def list_notifications(
        self,
        *,
        principal: Principal,
        unread_only: bool = False,
        limit: int = DEFAULT_PAGE_LIMIT,
        cursor: str | None = None,
    ) -> Outcome:
        if limit < 1:
            raise WorkflowError(ErrorKind.INVALID, "limit must be positive")
        limit = min(limit, _page_limit_max())
        repo = self._store.notifications_repository
        rows = repo.list_for_user(
            user_id=principal.user_id,
            unread_only=unread_only,
            limit=limit + 1,
            cursor=cursor,
        )
        items = rows[:limit]
        next_cursor = str(items[-1]["notification_id"]) if len(rows) > limit else None
        return {
            "items": items,
            "next_cursor": next_cursor,
            "total_unread": repo.count_unread(user_id=principal.user_id),
        }

    @workflow_operation("mark_notification_read")
    def mark_read(self, *, notification_id: str, principal: Principal, is_read: bool = True) -> Outcome:
        def _op() -> dict[str, Any]:
            repo = self._store.notifications_repository
            row = repo.get(notification_id=notification_id)
            if row is None:
                raise WorkflowError(ErrorKind.NOT_FOUND, "notification not found")
            if row.get("user_id") != principal.user_id:
                raise WorkflowError(ErrorKind.FORBIDDEN, "notification belongs to another user")
            return repo.set_read(notification_id=notification_id, is_read=is_read)

        return self._store.run_in_transaction(_op)

    @workflow_operation("mark_all_notifications_read")
    def mark_all_read(self, *, principal: Principal) -> Outcome:
        updated = self._store.run_in_transaction(
            lambda: self._store.notifications_repository.mark_all_read(user_id=principal.user_id)
        )
        return {"updated_count": updated}
