from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class QuestionStatus(StrEnum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    CLOSED = "CLOSED"


class QuestionPriority(StrEnum):
    HIGHEST = "HIGHEST"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


PRIORITY_RANK: dict[str, int] = {
    QuestionPriority.HIGHEST: 4,
    QuestionPriority.HIGH: 3,
    QuestionPriority.MEDIUM: 2,
    QuestionPriority.LOW: 1,
}


class ProjectRole(StrEnum):
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"


class FieldType(StrEnum):
    TEXT = "TEXT"
    NUMBER = "NUMBER"
    RADIO = "RADIO"
    FILE = "FILE"
    TEXTAREA = "TEXTAREA"


class NotificationType(StrEnum):
    NEW_QUESTION_ASSIGNED = "NEW_QUESTION_ASSIGNED"
    NEW_ANSWER_POSTED = "NEW_ANSWER_POSTED"
    ANSWERED_QUESTION_CLOSED = "ANSWERED_QUESTION_CLOSED"
    ASSIGNEE_DEADLINE_EXCEEDED = "ASSIGNEE_DEADLINE_EXCEEDED"
    REQUESTER_DEADLINE_EXCEEDED = "REQUESTER_DEADLINE_EXCEEDED"


@dataclass(frozen=True)
class Principal:
    """Authenticated actor resolved by the transport before the engine is called."""

    user_id: str
    is_admin: bool = False


@dataclass
class ProjectView:
    project: dict[str, Any]
    membership: dict[str, Any] | None

    @property
    def project_id(self) -> str:
        return str(self.project["project_id"])

    @property
    def creator_id(self) -> str:
        return str(self.project["creator_id"])

    def is_manager(self, principal: Principal) -> bool:
        if principal.is_admin or principal.user_id == self.creator_id:
            return True
        if self.membership is None:
            return False
        return self.membership.get("role") == ProjectRole.MANAGER


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"
