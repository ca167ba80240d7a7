from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from qaflow.domain import NotificationType, QuestionStatus, as_utc, utcnow
from qaflow.notifications import NotificationDispatcher, render_message
from qaflow.outcome import Outcome, workflow_operation

logger = logging.getLogger(__name__)

SWEEP_STATUSES: tuple[str, ...] = (str(QuestionStatus.NEW), str(QuestionStatus.IN_PROGRESS))


def _still_overdue(question: dict[str, Any] | None, now: datetime) -> bool:
    if question is None or question.get("is_deadline_notified"):
        return False
    deadline = question.get("deadline")
    return question.get("status") in SWEEP_STATUSES and deadline is not None and deadline < now


class DeadlineSweep:
    """Batch pass that flags overdue questions, notifying each at most once.

    Every question is handled in its own transaction: a crash or timeout
    leaves processed rows flagged and the remainder for the next run.
    """

    def __init__(self, store: Any, dispatcher: NotificationDispatcher) -> None:
        self._store = store
        self._dispatcher = dispatcher

    def _process_one(self, *, question_id: str, now: datetime) -> bool:
        def _op() -> bool:
            current = self._store.questions_repository.get(question_id=question_id, for_update=True)
            if not _still_overdue(current, now):
                return False
            project = self._store.projects_repository.get(project_id=current["project_id"]) or {}
            context = {"title": current.get("title", ""), "project": project.get("name", "")}
            self._dispatcher.notify(
                user_id=str(current["assignee_id"]),
                type_=NotificationType.ASSIGNEE_DEADLINE_EXCEEDED,
                related_id=question_id,
                message=render_message(NotificationType.ASSIGNEE_DEADLINE_EXCEEDED, **context),
            )
            self._dispatcher.notify(
                user_id=str(current["creator_id"]),
                type_=NotificationType.REQUESTER_DEADLINE_EXCEEDED,
                related_id=question_id,
                message=render_message(NotificationType.REQUESTER_DEADLINE_EXCEEDED, **context),
            )
            self._store.questions_repository.update(question={**current, "is_deadline_notified": True})
            return True

        return self._store.run_in_transaction(_op)

    @workflow_operation("deadline_sweep")
    def run(self, now: datetime | None = None) -> Outcome:
        at = as_utc(now) or utcnow()
        overdue = self._store.questions_repository.list_overdue(statuses=list(SWEEP_STATUSES), now=at)
        processed: list[str] = []
        failed: list[str] = []
        for question in overdue:
            question_id = str(question["question_id"])
            try:
                if self._process_one(question_id=question_id, now=at):
                    processed.append(question_id)
                else:
                    logger.warning("deadline_sweep_skipped question_id=%s reason=no_longer_overdue", question_id)
            except Exception:
                logger.exception("deadline_sweep_question_failed question_id=%s", question_id)
                failed.append(question_id)
        logger.info(
            "deadline_sweep_finished processed=%s failed=%s candidates=%s",
            len(processed),
            len(failed),
            len(overdue),
        )
        return {"processed": len(processed), "question_ids": processed, "failed_question_ids": failed}
